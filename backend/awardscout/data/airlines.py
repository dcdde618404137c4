"""Carrier-name lookup for the common operating carriers."""

AIRLINE_NAMES: dict[str, str] = {
    "AC": "Air Canada", "WS": "WestJet", "AA": "American Airlines",
    "DL": "Delta Air Lines", "UA": "United Airlines", "B6": "JetBlue Airways",
    "AS": "Alaska Airlines", "WN": "Southwest Airlines", "BA": "British Airways",
    "LH": "Lufthansa", "AF": "Air France", "KL": "KLM",
    "LX": "Swiss", "OS": "Austrian", "EK": "Emirates",
    "QR": "Qatar Airways", "SQ": "Singapore Airlines", "CX": "Cathay Pacific",
    "NH": "ANA", "JL": "Japan Airlines", "QF": "Qantas",
    "VA": "Virgin Australia", "NZ": "Air New Zealand", "EY": "Etihad Airways",
    "VS": "Virgin Atlantic", "FI": "Icelandair", "TP": "TAP Air Portugal",
    "AY": "Finnair", "SK": "SAS", "IB": "Iberia", "TK": "Turkish Airlines",
}


def is_carrier_code(code: object) -> bool:
    """Operating-carrier codes are exactly two characters."""
    return isinstance(code, str) and len(code) == 2


def carrier_name(code: str) -> str:
    return AIRLINE_NAMES.get(code, code)
