"""
Distinct identifier spaces used across the pipeline.

The Parliament sources do not share a key:
  DepId        numeric deputy ID from the base-info feed (``DepId``)
  CadastroId   author-reference ID used only inside the initiatives feed
               (``DepCadId`` in base info, ``idCadastro`` on initiative authors)
  BiographyId  ``BID`` query parameter of the scraped attendance/biography pages
  DistrictCode electoral circle ID (``cpId`` / ``DepCPId``)
  PartyAcronym parliamentary group acronym (``sigla`` / ``gpSigla``)
  RowId        internal identifier of a persisted row
"""

from typing import NewType

DepId = NewType("DepId", int)
CadastroId = NewType("CadastroId", int)
BiographyId = NewType("BiographyId", int)
DistrictCode = NewType("DistrictCode", int)
PartyAcronym = NewType("PartyAcronym", str)
RowId = NewType("RowId", str)
