# application/services/search_criteria.py
from __future__ import annotations
from datetime import date
from typing import Union

from domain.models import SearchCriteria

SearchTerm = tuple[Union[str, date], ...]


def build_search_terms(criteria: SearchCriteria) -> list[SearchTerm]:
    """
    Traduce los criterios a la secuencia ordenada de términos IMAP SEARCH:
      1) tipo de mensaje (ALL / DELETED / UNSEEN), siempre primero
      2) SENTBEFORE / SENTON / SENTSINCE <fecha> si hay filtro de fecha
      3) HEADER Message-ID <id> si se filtra por id
      4) HEADER <clave> <valor> por cada filtro de cabecera, en orden de inserción
    """
    terms: list[SearchTerm] = [(criteria.message_type,)]

    ds = criteria.date_search
    if ds is not None and ds.operator:
        terms.append(("SENT" + ds.operator.upper(), ds.date))

    if criteria.message_id:
        terms.append(("HEADER", "Message-ID", criteria.message_id))

    for key, value in (criteria.header_search or {}).items():
        terms.append(("HEADER", key, value))

    return terms


def flatten_terms(terms: list[SearchTerm]) -> list[Union[str, date]]:
    # imapclient espera una lista plana: ["ALL", "SENTSINCE", date(...), "HEADER", ...]
    return [item for term in terms for item in term]
