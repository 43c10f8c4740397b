"""
Known US banks and routing-number helpers.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class USBank:
    name: str
    routing_numbers: List[str]
    aliases: List[str] = field(default_factory=list)


US_BANKS = [
    USBank("JPMorgan Chase Bank", ["021000021", "267084131", "322271627", "325070760"], ["Chase", "Chase Bank", "JPMorgan Chase"]),
    USBank("Bank of America", ["026009593", "053000196", "111000025", "121000358"], ["BofA", "BoA"]),
    USBank("Wells Fargo Bank", ["121000248", "091000019", "053207766", "102000076"], ["Wells Fargo", "WF"]),
    USBank("Citibank", ["021000089", "254070116", "322271724", "113193532"], ["Citi"]),
    USBank("U.S. Bank", ["091000022", "042000013", "123103729", "091215927"], ["US Bank", "USB"]),
    USBank("PNC Bank", ["043000096", "054001725", "083000108", "267084199"], ["PNC"]),
    USBank("Capital One Bank", ["031176110", "065000090", "051405515", "056073502"], ["Capital One", "CapOne"]),
    USBank("TD Bank", ["031201360", "054001204", "067014822", "211274450"], ["TD"]),
    USBank("Fifth Third Bank", ["042000314", "063103915", "072400052", "083002342"], ["Fifth Third", "53 Bank"]),
    USBank("Truist Bank", ["053000219", "061000104", "063104668", "253177049"], ["Truist", "BB&T", "SunTrust"]),
    USBank("HSBC Bank USA", ["021001088", "022000020", "021001234"], ["HSBC"]),
    USBank("Citizens Bank", ["011500120", "021313103", "036001808", "211170101"], ["Citizens"]),
    USBank("KeyBank", ["041001039", "125000574", "307070115"], ["Key Bank"]),
    USBank("Regions Bank", ["062000019", "084003997", "062203751"], ["Regions"]),
    USBank("M&T Bank", ["022000046", "031100089", "052000113"], ["M&T", "Manufacturers and Traders Trust"]),
    USBank("Huntington Bank", ["044000024", "072000326", "074900275"], ["Huntington"]),
    USBank("Ally Bank", ["124003116"], ["Ally"]),
    USBank("American Express Bank", ["124085244"], ["AmEx Bank", "Amex"]),
    USBank("Discover Bank", ["011500120"], ["Discover"]),
    USBank("Navy Federal Credit Union", ["256074974"], ["Navy Federal", "NFCU"]),
    USBank("USAA Federal Savings Bank", ["314074269"], ["USAA", "USAA Bank"]),
    USBank("Charles Schwab Bank", ["121202211"], ["Schwab", "Charles Schwab"]),
    USBank("Goldman Sachs Bank USA", ["124085244"], ["Goldman Sachs", "Marcus"]),
    USBank("First National Bank", ["043000096", "091000019"], ["FNB", "First National"]),
    USBank("Santander Bank", ["011075150", "231372691"], ["Santander"]),
    USBank("BMO Harris Bank", ["071000288", "075000022"], ["BMO", "Harris Bank"]),
    USBank("Comerica Bank", ["072000096", "113000023"], ["Comerica"]),
    USBank("Zions Bank", ["124000054"], ["Zions"]),
    USBank("First Citizens Bank", ["053000219", "253177049"], ["First Citizens"]),
    USBank("Synovus Bank", ["061100606"], ["Synovus"]),
]

# Display-only fallback when the routing number is not in US_BANKS
FALLBACK_BANK_NAMES = [
    "Wells Fargo Bank",
    "JPMorgan Chase Bank",
    "Bank of America",
    "U.S. Bank",
    "PNC Bank",
    "Capital One Bank",
    "TD Bank",
    "Fifth Third Bank",
]

# Routing numbers seen in bulk imports that are not in US_BANKS
IMPORT_ROUTING_BANKS = {
    "084106768": "Mercury",
    "112000066": "Wells Fargo Bank",
    "121145349": "Brex",
    "211370150": "Novo",
    "055002707": "Truist Bank",
    "265473485": "Pelican State Credit Union",
    "062000080": "Wells Fargo Bank",
    "063100277": "Bank of America",
    "111017694": "Truist Bank",
    "061213043": "Morris Bank",
    "065002108": "Liberty Bank and Trust",
    "111900659": "Wells Fargo Bank",
    "123456789": "Unknown Bank",
}

UNKNOWN_BANK = "Unknown Bank"
PLACEHOLDER = "-"

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


def search_banks(query: str, limit: int = 10) -> List[USBank]:
    """Case-insensitive substring search over bank names and aliases."""
    if not query or len(query) < 2:
        return []

    term = query.lower()
    matches = [
        bank for bank in US_BANKS
        if term in bank.name.lower() or any(term in alias.lower() for alias in bank.aliases)
    ]
    return matches[:limit]


def get_bank_by_name(name: str) -> Optional[USBank]:
    for bank in US_BANKS:
        if bank.name == name or name in bank.aliases:
            return bank
    return None


def get_bank_by_routing_number(routing_number: str) -> Optional[USBank]:
    for bank in US_BANKS:
        if routing_number in bank.routing_numbers:
            return bank
    return None


def fallback_bank_name(routing_number: str) -> str:
    """Deterministic pseudo bank name: leading digits modulo the fallback list."""
    match = _LEADING_DIGITS.match(routing_number or "")
    index = int(match.group(1)) % len(FALLBACK_BANK_NAMES) if match else 0
    return FALLBACK_BANK_NAMES[index]


def bank_name_from_routing(routing_number: str) -> str:
    """Known bank for the routing number, else the fallback name."""
    bank = get_bank_by_routing_number(routing_number)
    if bank:
        return bank.name
    return fallback_bank_name(routing_number)


def import_bank_name(bank_name: Optional[str], routing_number: str) -> str:
    """Bank name for an imported row: the row's own value, then lookup tables."""
    if bank_name and bank_name.strip() and bank_name.strip() != PLACEHOLDER:
        return bank_name.strip()

    if routing_number in IMPORT_ROUTING_BANKS:
        return IMPORT_ROUTING_BANKS[routing_number]

    bank = get_bank_by_routing_number(routing_number)
    return bank.name if bank else UNKNOWN_BANK
