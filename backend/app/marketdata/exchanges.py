"""Static exchange tables used by the symbol resolver."""

# Bloomberg exchange suffix -> Twelve Data exchange tag appended to the ticker
TWELVE_DATA_SUFFIXES: dict[str, str] = {
    "US": "",
    "GR": ":XETR",
    "GY": ":XETR",
    "CN": ":TSX",
    "CT": ":TSX",
    "AU": ":ASX",
    "FP": ":EPA",
    "SM": ":BME",
    "SW": ":SIX",
    "SS": ":SHH",
    "SZ": ":SHZ",
    "IN": ":NSE",
    "KS": ":KRX",
    "TB": ":SET",
    "MK": ":KLSE",
    "SP": ":SGX",
    "TT": ":TWSE",
    "NA": ":Euronext",
    # Markets normally served by FMP still get a Twelve Data spelling
    "LN": ":LSE",
    "JP": ":JPX",
    "JT": ":JPX",
    "HK": ":HKEX",
    "IM": ":MTA",
    "HM": ":MTA",
    "TE": ":MTA",
    "DC": ":OMXC",
}

# US tickers Twelve Data lists under a different symbol
US_SYMBOL_OVERRIDES: dict[str, str] = {
    "ACHVW": "ACHVWXX",
    "TICAW": "TICAWX",
}

# Suffixes routed to FMP: Japan, Hong Kong, Italy, UK, Denmark
ALTERNATE_VENDOR_SUFFIXES: frozenset[str] = frozenset(
    {"JP", "JT", "HK", "IM", "HM", "TE", "LN", "DC"}
)

# Bloomberg suffix -> FMP exchange suffixes to try, in priority order.
# The bare ticker is always tried last.
FMP_CANDIDATE_SUFFIXES: dict[str, tuple[str, ...]] = {
    "JP": (".T", ".TYO"),
    "JT": (".T", ".TYO"),
    "HK": (".HK",),
    "IM": (".MI",),
    "HM": (".MI",),
    "TE": (".MI",),
    "LN": (".L", ".LON"),
    "DC": (".CO",),
}

# SIX Swiss Exchange prices arrive in minor units (centimes) from Twelve Data
MINOR_UNIT_MARKER = " SW"
MINOR_UNIT_DIVISOR = 100.0

# Suffix meaning "domestic" for the fundamentals vendor
DOMESTIC_SUFFIX = "US"
