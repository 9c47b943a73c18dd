"""
CGNC -- default Moroccan chart of accounts and statement rubric table.

Responsibility:
    Static reference data: the accounts the ledger core needs out of the
    box, and the account-number -> rubric lookup used to build the Bilan
    (BL) and the Compte de Produits et Charges (CPC).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Seeded into the store by
    ``SqlDocumentStore.add_accounts(default_chart())``; read by the
    statement aggregator.

Rubric patterns follow three forms:
    "34"       prefix match
    "61*"      wildcard, same as prefix
    "212-218"  numeric range on the first len(start) digits
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mizan_kernel.domain.ledger import AccountInfo, AccountType


def _account(
    number: str,
    label: str,
    account_type: AccountType,
    is_detail: bool = True,
) -> AccountInfo:
    return AccountInfo(
        id=number,
        number=number,
        label=label,
        account_class=int(number[0]),
        account_type=account_type,
        is_detail_account=is_detail,
        is_active=True,
    )


_A = AccountType

DEFAULT_CHART: tuple[AccountInfo, ...] = (
    _account("1111", "Capital social", _A.EQUITY),
    _account("1140", "Reserve legale", _A.EQUITY),
    _account("1481", "Emprunts aupres des etablissements de credit", _A.LIABILITY),
    _account("2332", "Materiel et outillage", _A.ASSET),
    _account("2355", "Materiel informatique", _A.ASSET),
    _account("3111", "Marchandises", _A.ASSET),
    _account("342", "Clients et comptes rattaches", _A.ASSET, is_detail=False),
    _account("3421", "Clients", _A.ASSET),
    _account("3455", "Etat - TVA recuperable", _A.ASSET, is_detail=False),
    _account("34552", "Etat - TVA recuperable sur les charges", _A.ASSET),
    _account("441", "Fournisseurs et comptes rattaches", _A.LIABILITY, is_detail=False),
    _account("4411", "Fournisseurs", _A.LIABILITY),
    _account("4432", "Remunerations dues au personnel", _A.LIABILITY),
    _account("4455", "Etat - TVA facturee", _A.LIABILITY, is_detail=False),
    _account("44551", "Etat - TVA facturee exigible", _A.LIABILITY),
    _account("44558", "Etat - TVA facturee non encore exigible", _A.LIABILITY),
    _account("5111", "Cheques et valeurs a encaisser", _A.ASSET),
    _account("5141", "Banques", _A.ASSET),
    _account("5161", "Caisses", _A.ASSET),
    _account("6111", "Achats de marchandises", _A.EXPENSE),
    _account("6125", "Achats non stockes de matieres et fournitures", _A.EXPENSE),
    _account("6131", "Locations et charges locatives", _A.EXPENSE),
    _account("6171", "Remunerations du personnel", _A.EXPENSE),
    _account("6311", "Interets des emprunts et dettes", _A.EXPENSE),
    _account("7111", "Ventes de marchandises au Maroc", _A.REVENUE),
    _account("7121", "Ventes de biens et services produits au Maroc", _A.REVENUE),
    _account("7381", "Interets et produits assimiles", _A.REVENUE),
)


def default_chart() -> list[AccountInfo]:
    return list(DEFAULT_CHART)


class Statement(str, Enum):
    BILAN = "BL"
    CPC = "CPC"


class Section(str, Enum):
    """Statement side.  Actif and charges carry debit balances."""

    ACTIF = "actif"
    PASSIF = "passif"
    PRODUITS = "produits"
    CHARGES = "charges"

    @property
    def is_debit_side(self) -> bool:
        return self in (Section.ACTIF, Section.CHARGES)


@dataclass(frozen=True, slots=True)
class Rubric:
    """
    One line of the Bilan or CPC.

    ``sign`` flips the contribution of every matched account balance.
    Contra accounts (28xx) need no flip: their credit balance already
    reduces the actif total.
    """

    code: str
    label: str
    statement: Statement
    section: Section
    patterns: tuple[str, ...]
    sign: int = 1

    def matches(self, account_number: str) -> bool:
        return any(account_matches(account_number, p) for p in self.patterns)


def account_matches(account_number: str, pattern: str) -> bool:
    """Match an account number against a prefix, wildcard or range pattern."""
    if "*" in pattern:
        return account_number.startswith(pattern.replace("*", ""))
    if "-" in pattern:
        start, end = pattern.split("-", 1)
        head = account_number[: len(start)]
        if not head.isdigit():
            return False
        return int(start) <= int(head) <= int(end)
    return account_number.startswith(pattern)


_BL, _CPC = Statement.BILAN, Statement.CPC
_S = Section

RUBRICS: tuple[Rubric, ...] = (
    # Bilan - actif
    Rubric("AA", "Immobilisations en non-valeurs", _BL, _S.ACTIF, ("21",)),
    Rubric("AB", "Immobilisations incorporelles", _BL, _S.ACTIF, ("22",)),
    Rubric("AC", "Immobilisations corporelles", _BL, _S.ACTIF, ("23",)),
    Rubric("AD", "Immobilisations financieres", _BL, _S.ACTIF, ("24-26",)),
    Rubric("AE", "Ecarts de conversion actif", _BL, _S.ACTIF, ("27",)),
    Rubric("AF", "Amortissements et provisions", _BL, _S.ACTIF, ("28", "29")),
    Rubric("BA", "Stocks", _BL, _S.ACTIF, ("31",)),
    Rubric("BB", "Creances de l'actif circulant", _BL, _S.ACTIF, ("34",)),
    Rubric("BC", "Titres et valeurs de placement", _BL, _S.ACTIF, ("35",)),
    Rubric("BD", "Ecarts de conversion actif circulant", _BL, _S.ACTIF, ("37",)),
    Rubric("CA", "Tresorerie actif", _BL, _S.ACTIF, ("51*",)),
    # Bilan - passif
    Rubric("DA", "Capitaux propres", _BL, _S.PASSIF, ("11",)),
    Rubric("DB", "Capitaux propres assimiles", _BL, _S.PASSIF, ("13",)),
    Rubric("DC", "Dettes de financement", _BL, _S.PASSIF, ("14",)),
    Rubric("DD", "Provisions durables pour risques et charges", _BL, _S.PASSIF, ("15",)),
    Rubric("DE", "Ecarts de conversion passif", _BL, _S.PASSIF, ("17",)),
    Rubric("EA", "Dettes du passif circulant", _BL, _S.PASSIF, ("44",)),
    Rubric("EB", "Autres provisions pour risques et charges", _BL, _S.PASSIF, ("45",)),
    Rubric("EC", "Ecarts de conversion passif circulant", _BL, _S.PASSIF, ("47",)),
    Rubric("FA", "Tresorerie passif", _BL, _S.PASSIF, ("55*",)),
    # CPC - produits
    Rubric("GA", "Produits d'exploitation", _CPC, _S.PRODUITS, ("71",)),
    Rubric("GB", "Produits financiers", _CPC, _S.PRODUITS, ("73",)),
    Rubric("GC", "Produits non courants", _CPC, _S.PRODUITS, ("75",)),
    # CPC - charges
    Rubric("HA", "Charges d'exploitation", _CPC, _S.CHARGES, ("61",)),
    Rubric("HB", "Charges financieres", _CPC, _S.CHARGES, ("63",)),
    Rubric("HC", "Charges non courantes", _CPC, _S.CHARGES, ("65",)),
    Rubric("HD", "Impots sur les resultats", _CPC, _S.CHARGES, ("67",)),
)


def rubrics_for(account_number: str) -> list[Rubric]:
    """All rubrics an account contributes to (usually exactly one)."""
    return [r for r in RUBRICS if r.matches(account_number)]
