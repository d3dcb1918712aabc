"""Country normalization helpers shared by the enrichment models."""

from __future__ import annotations

import re
from typing import Final

UNKNOWN_COUNTRY: Final[str] = "unknown"

ISO_COUNTRY_CODES: Final[frozenset[str]] = frozenset(
    """
    AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ BL BM BN BO BQ
    BR BS BT BV BW BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR CU CV CW CX CY CZ DE DJ DK DM
    DO DZ EC EE EG EH ER ES ET FI FJ FK FM FO FR GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS
    GT GU GW GY HK HM HN HR HT HU ID IE IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN
    KP KR KW KY KZ LA LB LC LI LK LR LS LT LU LV LY MA MC MD ME MF MG MH MK ML MM MN MO MP MQ
    MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP NR NU NZ OM PA PE PF PG PH PK PL PM
    PN PR PS PT PW PY QA RE RO RS RU RW SA SB SC SD SE SG SH SI SJ SK SL SM SN SO SR SS ST SV
    SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO TR TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI
    VN VU WF WS YE YT ZA ZM ZW
    """.split()
)

COUNTRY_NAME_TO_CODE: Final[dict[str, str]] = {
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
    "u.s.": "US",
    "u.s.a.": "US",
    "canada": "CA",
    "mexico": "MX",
    "méxico": "MX",
    "puerto rico": "PR",
    "united kingdom": "GB",
    "uk": "GB",
    "great britain": "GB",
    "england": "GB",
    "scotland": "GB",
    "germany": "DE",
    "france": "FR",
    "italy": "IT",
    "spain": "ES",
    "netherlands": "NL",
    "the netherlands": "NL",
    "belgium": "BE",
    "switzerland": "CH",
    "sweden": "SE",
    "norway": "NO",
    "denmark": "DK",
    "finland": "FI",
    "poland": "PL",
    "czech republic": "CZ",
    "czechia": "CZ",
    "austria": "AT",
    "ireland": "IE",
    "portugal": "PT",
    "greece": "GR",
    "japan": "JP",
    "china": "CN",
    "india": "IN",
    "australia": "AU",
    "new zealand": "NZ",
    "singapore": "SG",
    "hong kong": "HK",
    "south korea": "KR",
    "thailand": "TH",
    "vietnam": "VN",
    "brazil": "BR",
    "argentina": "AR",
    "chile": "CL",
    "colombia": "CO",
    "peru": "PE",
    "israel": "IL",
    "united arab emirates": "AE",
    "uae": "AE",
    "saudi arabia": "SA",
    "south africa": "ZA",
    "turkey": "TR",
    "russia": "RU",
    "ukraine": "UA",
    "philippines": "PH",
    "indonesia": "ID",
    "malaysia": "MY",
    "taiwan": "TW",
    "egypt": "EG",
    "nigeria": "NG",
    "kenya": "KE",
}

US_STATE_NAMES: Final[frozenset[str]] = frozenset(
    {
        "alabama", "alaska", "arizona", "arkansas", "california", "colorado", "connecticut",
        "delaware", "florida", "georgia", "hawaii", "idaho", "illinois", "indiana", "iowa",
        "kansas", "kentucky", "louisiana", "maine", "maryland", "massachusetts", "michigan",
        "minnesota", "mississippi", "missouri", "montana", "nebraska", "nevada", "new hampshire",
        "new jersey", "new mexico", "new york", "north carolina", "north dakota", "ohio",
        "oklahoma", "oregon", "pennsylvania", "rhode island", "south carolina", "south dakota",
        "tennessee", "texas", "utah", "vermont", "virginia", "washington", "west virginia",
        "wisconsin", "wyoming", "district of columbia",
    }
)

US_STATE_CODES: Final[frozenset[str]] = frozenset(
    """
    AL AK AZ AR CA CO CT DE FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN MS MO MT NE NV NH NJ
    NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA WV WI WY DC
    """.split()
)


def normalize_country_code(value: str | None) -> str:
    """Map a country name or code onto an ISO-3166 alpha-2 code, or ``"unknown"``."""
    if not value:
        return UNKNOWN_COUNTRY
    cleaned = value.strip()
    if not cleaned:
        return UNKNOWN_COUNTRY
    if len(cleaned) == 2 and cleaned.upper() in ISO_COUNTRY_CODES:
        return cleaned.upper()
    lowered = cleaned.lower()
    if lowered in COUNTRY_NAME_TO_CODE:
        return COUNTRY_NAME_TO_CODE[lowered]
    return UNKNOWN_COUNTRY


def detect_country(text: str | None) -> str | None:
    """Find the country a free-text location refers to, if it names one."""
    if not text:
        return None
    lowered = text.lower()
    for name in sorted(COUNTRY_NAME_TO_CODE, key=len, reverse=True):
        if re.search(rf"(?<![a-z]){re.escape(name)}(?![a-z])", lowered):
            return COUNTRY_NAME_TO_CODE[name]
    for state in US_STATE_NAMES:
        if re.search(rf"(?<![a-z]){re.escape(state)}(?![a-z])", lowered):
            return "US"
    # "Austin, TX" style trailers
    trailer = re.search(r",\s*([A-Z]{2})\b", text)
    if trailer and trailer.group(1) in US_STATE_CODES:
        return "US"
    return None
