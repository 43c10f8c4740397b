"""
Sample business bank-account rows bundled for the seed import.
"""

from .schema import BusinessRow


def _row(business, owner, bank, account_name, routing, number, account_type, is_main, is_default):
    return BusinessRow(
        business_name=business,
        owner_name=owner,
        bank_name=bank,
        bank_account_name=account_name,
        bank_account_routing=routing,
        bank_account_number=number,
        bank_account_type=account_type,
        is_main_account=is_main,
        is_default_account=is_default,
    )


SEED_ROWS = [
    _row("Vis Viva, Inc", "John Locascio", "Mercury", "John LoCascio", "084106768", "9800520955", "checking", True, True),
    _row("Vis Viva, Inc", "John Locascio", "Mercury", "John LoCascio", "084106768", "9880702365", "savings", False, False),
    _row("Liyah care Homecare llc", "Augustin Pombo", "-", "-", "-", "-", "-", True, False),
    _row("Madmaxhours LLac", "Renard Smith", "-", "-", "-", "-", "-", True, True),
    _row("El Paso TX Flowers", "Linda Mcghee", "Wells Fargo", "LINDA  GUADALUPE MCGHEE", "112000066", "8105718939", "checking", True, True),
    _row("Home Pros Unlimited LLC", "Anderson Gil", "-", "-", "-", "-", "-", True, False),
    _row("Allegiance Property Management Inc", "Alexis Williams", "Brex", "ALEXIS WILLIAMS", "121145349", "743780204396904", "checking", True, True),
    _row("Allegiance Property Management Inc", "Alexis Williams", "Brex", "ALEXIS WILLIAMS", "121145349", "903559590178634", "checking", False, False),
    _row("Wholesale Technology Services", "Shawn Thompson", "-", "-", "-", "-", "-", True, True),
    _row("S2S Couture Ltd Co", "Shaunte Cravin", "Novo", "Shaunte Cravin", "211370150", "101837980", "checking", True, True),
    _row("Advance care services llc", "Bintou Bayo", "Truist", "ABOUBACAR KABA", "055002707", "1000159743151", "checking", True, True),
    _row("Kesha's Space LLC", "Kesha Jaramillo", "Brex", "Kesha Brown", "121145349", "317659879780781", "checking", True, True),
    _row("Kesha's Space LLC", "Kesha Jaramillo", "Brex", "Kesha Brown", "121145349", "682389756514949", "checking", False, False),
    _row("Kesha's Space LLC", "Kesha Jaramillo", "Brex", "Kesha Brown", "121145349", "899300990466628", "checking", False, False),
    _row("Kesha's Space LLC", "Kesha Jaramillo", "Brex", "Kesha Brown", "121145349", "579002870187459", "checking", False, False),
    _row("Kesha's Space LLC", "Kesha Jaramillo", "Brex", "Kesha Brown", "121145349", "354302984367699", "checking", False, False),
    _row("Promised Land Logistics, LLC", "Bryan Duffy", "Pelican State Credit Union", "BRYAN DUFFY", "265473485", "1000000516521", "savings", True, True),
    _row("Promised Land Logistics, LLC", "Bryan Duffy", "Pelican State Credit Union", "BRYAN DUFFY", "265473485", "1700000516521", "checking", False, False),
    _row("Promised Land Logistics, LLC", "Bryan Duffy", "Pelican State Credit Union", "BRYAN DUFFY", "265473485", "1000000279782", "savings", False, False),
    _row("Promised Land Logistics, LLC", "Bryan Duffy", "Pelican State Credit Union", "BRYAN DUFFY", "265473485", "1710000279782", "checking", False, False),
    _row("Next In Line Auto Sale", "Abe Rancher", "Wells Fargo", "ABE RANCHER", "062000080", "2554267118", "savings", True, True),
]
