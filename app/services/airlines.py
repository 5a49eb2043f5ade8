import logging

logger = logging.getLogger(__name__)

AIRLINE_CODES: dict[str, str] = {
    'american': 'AA',
    'united': 'UA',
    'delta': 'DL',
    'southwest': 'WN',
    'lufthansa': 'LH',
    'air france': 'AF',
    'british airways': 'BA',
    'emirates': 'EK',
    'qatar': 'QR',
    'singapore': 'SQ',
    'air india': 'AI',
    'indigo': '6E',
    'vistara': 'UK',
    'spicejet': 'SG',
    'air canada': 'AC',
    'klm': 'KL',
    'turkish': 'TK',
    'jetblue': 'B6',
}


def find_airline_code(text: str) -> str:
    """
    Resolve an airline name or code to its IATA code.

    A two-character alphanumeric input is taken as a code. Otherwise exact
    name match, then substring containment in either direction, and finally
    the input itself uppercased.
    """
    cleaned = text.strip()
    lowered = cleaned.lower()

    if len(cleaned) == 2 and cleaned.isalnum():
        return cleaned.upper()

    if lowered in AIRLINE_CODES:
        return AIRLINE_CODES[lowered]

    if len(lowered) > 2:
        for name, code in AIRLINE_CODES.items():
            if lowered in name or name in lowered:
                logger.debug(f"Airline '{text}' matched '{name}' ({code})")
                return code

    return cleaned.upper()
