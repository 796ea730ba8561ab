"""Per-category configuration for the generic governor.

The six resource categories share one pipeline and differ only in what is
declared here:

    - indicators:   ordered (label, pattern) pairs for extraction
    - keywords:     extra vocabulary that counts as HIGH priority
    - symbols:      known names -> ticker/symbol (also the abbreviation table)
    - search_terms: region -> terms appended to search queries
    - search_site:  site filter for the first search candidate
    - direct:       builder for known-good direct pages

Regions are normalized to "indian", "us" or "global" (anything else is kept
lower-cased and falls back to the "default" search terms).
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, quote_plus

from marketdata_mcp.core.governor import extraction as ex
from marketdata_mcp.core.governor.extraction import Indicator
from marketdata_mcp.core.governor.priority import (
    CRITICAL_KEYWORDS,
    HIGH_KEYWORDS,
    is_symbol_like,
)

#: (symbol, region, raw request text) -> [(label, url)]
DirectBuilder = Callable[[str, str, str], List[Tuple[str, str]]]

_REGION_ALIASES = {
    "india": "indian",
    "in": "indian",
    "inr": "indian",
    "nse": "indian",
    "bse": "indian",
    "usa": "us",
    "usd": "us",
    "united states": "us",
    "world": "global",
}

#: Words that never identify the entity itself
QUALIFIER_WORDS = frozenset(
    set(CRITICAL_KEYWORDS)
    | set(HIGH_KEYWORDS)
    | {
        "stock",
        "stocks",
        "share",
        "shares",
        "of",
        "the",
        "for",
        "what",
        "is",
        "whats",
        "what's",
        "show",
        "me",
        "get",
        "give",
        "a",
        "an",
        "and",
        "in",
        "on",
        "data",
        "info",
        "information",
        "details",
        "crypto",
        "coin",
        "fund",
        "etf",
        "bond",
        "bonds",
        "commodity",
        "futures",
    }
)

_CLEAN_TOKEN = re.compile(r"[^A-Za-z0-9.&]")


def normalize_region(region: Optional[str]) -> str:
    value = (region or "").strip().lower()
    return _REGION_ALIASES.get(value, value) or "us"


@dataclass(frozen=True)
class CategoryProfile:
    """Everything that distinguishes one resource category from another."""

    name: str
    indicators: Tuple[Indicator, ...]
    search_terms: Mapping[str, str]
    direct: DirectBuilder
    keywords: Tuple[str, ...] = ()
    symbols: Mapping[str, str] = field(default_factory=dict)
    search_site: Optional[str] = None
    default_region: str = "us"
    tag: str = ""

    def lookup_symbol(self, text: str) -> Optional[str]:
        """Symbol for a known name mentioned in ``text``, longest name first."""
        lowered = text.lower()
        for name in sorted(self.symbols, key=len, reverse=True):
            if re.search(rf"(?<![a-z0-9]){re.escape(name)}(?![a-z0-9])", lowered):
                return self.symbols[name]
        return None

    def resolve_symbol(self, text: str) -> Optional[str]:
        """Known symbol, else the first non-qualifier symbol-like token uppercased."""
        known = self.lookup_symbol(text)
        if known:
            return known
        for raw in text.split():
            token = _CLEAN_TOKEN.sub("", raw)
            if not token or token.lower() in QUALIFIER_WORDS:
                continue
            if is_symbol_like(token.replace("&", "")):
                return token.upper()
        return None

    def search_terms_for(self, region: str) -> str:
        return self.search_terms.get(region, self.search_terms.get("default", ""))


#: Search engine -> results URL prefix; the encoded query is appended
SEARCH_ENGINES: Dict[str, str] = {
    "google": "https://www.google.com/search?q=",
    "bing": "https://www.bing.com/search?q=",
    "yandex": "https://yandex.com/search/?text=",
    "duckduckgo": "https://duckduckgo.com/?q=",
}


def search_url(query: str, engine: str = "google") -> str:
    """Results page URL for ``query`` on ``engine``.

    Raises:
        ValueError: for an unknown engine
    """
    try:
        prefix = SEARCH_ENGINES[engine.strip().lower()]
    except KeyError:
        allowed = ", ".join(SEARCH_ENGINES)
        raise ValueError(f"Unknown search engine '{engine}'. Allowed: {allowed}") from None
    return f"{prefix}{quote_plus(query.strip())}"


# ---------------------------------------------------------------------------
# Direct source builders
# ---------------------------------------------------------------------------


def _yahoo_quote(symbol: str) -> str:
    return f"https://finance.yahoo.com/quote/{quote(symbol, safe='.')}/"


def _stock_direct(symbol: str, region: str, text: str) -> List[Tuple[str, str]]:
    if region == "indian" and "." not in symbol:
        sources = [
            (f"Yahoo Finance ({symbol}.NS)", _yahoo_quote(f"{symbol}.NS")),
            (f"Yahoo Finance ({symbol}.BO)", _yahoo_quote(f"{symbol}.BO")),
            (f"Yahoo Finance ({symbol})", _yahoo_quote(symbol)),
        ]
    else:
        sources = [(f"Yahoo Finance ({symbol})", _yahoo_quote(symbol))]
    sources.append(
        ("Yahoo Finance Lookup", f"https://finance.yahoo.com/lookup?s={quote_plus(text.strip())}")
    )
    return sources


_CRYPTO_SLUGS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "XRP": "xrp",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "BNB": "bnb",
    "USDT": "tether",
    "MATIC": "polygon",
    "DOT": "polkadot",
    "LTC": "litecoin",
}


def _crypto_direct(symbol: str, region: str, text: str) -> List[Tuple[str, str]]:
    sources = []
    slug = _CRYPTO_SLUGS.get(symbol)
    if slug:
        sources.append(
            (f"CoinMarketCap ({symbol})", f"https://coinmarketcap.com/currencies/{slug}/")
        )
    sources.append(
        ("CoinMarketCap Search", f"https://coinmarketcap.com/search/?q={quote_plus(symbol.lower())}")
    )
    return sources


_BOND_PAGES = {
    "indian": "https://www.investing.com/rates-bonds/india-10-year-bond-yield",
    "us": "https://www.investing.com/rates-bonds/u.s.-10-year-bond-yield",
}


def _bond_direct(symbol: str, region: str, text: str) -> List[Tuple[str, str]]:
    sources = []
    if region in _BOND_PAGES:
        sources.append((f"Investing.com ({region} 10Y)", _BOND_PAGES[region]))
    sources.append(("Investing.com Bonds", "https://www.investing.com/rates-bonds/"))
    return sources


def _commodity_direct(symbol: str, region: str, text: str) -> List[Tuple[str, str]]:
    return [
        (
            f"TradingView (MCX-{symbol}1!)",
            f"https://in.tradingview.com/symbols/MCX-{quote(symbol)}1!/",
        ),
        (f"TradingView ({symbol})", f"https://in.tradingview.com/symbols/{quote(symbol)}/"),
        ("Investing.com Commodities", "https://www.investing.com/commodities/"),
    ]


def _etf_direct(symbol: str, region: str, text: str) -> List[Tuple[str, str]]:
    if region == "indian" and "." not in symbol:
        return [(f"Yahoo Finance ({symbol}.NS)", _yahoo_quote(f"{symbol}.NS"))]
    return [(f"Yahoo Finance ({symbol})", _yahoo_quote(symbol))]


def _mutual_fund_direct(symbol: str, region: str, text: str) -> List[Tuple[str, str]]:
    if region == "indian":
        return [("Value Research", "https://www.valueresearchonline.com/funds/")]
    return [(f"Yahoo Finance ({symbol})", _yahoo_quote(symbol))]


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

STOCK = CategoryProfile(
    name="stock",
    tag="STK",
    indicators=(ex.PRICE, ex.MARKET_CAP, ex.PE_RATIO, ex.VOLUME),
    keywords=("shares", "stock", "52 week", "beta"),
    symbols={
        "reliance": "RELIANCE",
        "tata motors": "TATAMOTORS",
        "infosys": "INFY",
        "hdfc bank": "HDFCBANK",
        "icici bank": "ICICIBANK",
        "sbi": "SBIN",
        "hcl": "HCLTECH",
        "maruti": "MARUTI",
        "l&t": "LT",
        "zomato": "ETERNAL",
        "paytm": "PAYTM",
        "nykaa": "NYKAA",
        "mahindra": "M&M",
        "ather": "ATHERENERG",
        "apple": "AAPL",
        "microsoft": "MSFT",
        "tesla": "TSLA",
        "alphabet": "GOOGL",
        "amazon": "AMZN",
        "nvidia": "NVDA",
    },
    search_site="finance.yahoo.com",
    search_terms={
        "indian": "stock price NSE BSE india financial data",
        "us": "stock price NASDAQ NYSE financial data",
        "default": "stock price financial data",
    },
    direct=_stock_direct,
)

CRYPTO = CategoryProfile(
    name="crypto",
    tag="CRY",
    indicators=(ex.PRICE, ex.MARKET_CAP, ex.VOLUME_24H, ex.CHANGE),
    keywords=("24h", "circulating supply", "coin", "token"),
    symbols={
        "bitcoin": "BTC",
        "ethereum": "ETH",
        "ether": "ETH",
        "solana": "SOL",
        "ripple": "XRP",
        "cardano": "ADA",
        "dogecoin": "DOGE",
        "binance coin": "BNB",
        "tether": "USDT",
        "polygon": "MATIC",
        "polkadot": "DOT",
        "litecoin": "LTC",
    },
    search_site="coinmarketcap.com",
    search_terms={"default": "cryptocurrency price market cap coinmarketcap"},
    direct=_crypto_direct,
    default_region="global",
)

BOND = CategoryProfile(
    name="bond",
    tag="BND",
    indicators=(ex.YIELD, ex.PRICE, ex.COUPON, ex.MATURITY),
    keywords=("coupon", "maturity", "treasury", "gilt", "spread"),
    symbols={
        "10 year": "10Y",
        "10y": "10Y",
        "treasury": "UST",
        "gilt": "GILT",
        "bund": "BUND",
    },
    search_site="investing.com",
    search_terms={
        "indian": "bond yield india government corporate RBI",
        "us": "bond yield treasury corporate federal reserve",
        "global": "bond yield global market sovereign",
        "default": "bond yield rates",
    },
    direct=_bond_direct,
)

COMMODITY = CategoryProfile(
    name="commodity",
    tag="CMD",
    indicators=(ex.PRICE, ex.CHANGE, ex.DAY_HIGH, ex.DAY_LOW),
    keywords=("futures", "spot", "ounce", "barrel", "mcx"),
    symbols={
        "gold": "GOLD",
        "silver": "SILVER",
        "crude oil": "CRUDEOIL",
        "crude": "CRUDEOIL",
        "natural gas": "NATURALGAS",
        "copper": "COPPER",
        "zinc": "ZINC",
        "aluminium": "ALUMINIUM",
        "aluminum": "ALUMINIUM",
        "lead": "LEAD",
        "nickel": "NICKEL",
    },
    search_site="tradingview.com",
    search_terms={
        "indian": "commodity price MCX india futures",
        "us": "commodity futures price COMEX NYMEX",
        "default": "commodity price futures",
    },
    direct=_commodity_direct,
    default_region="indian",
)

ETF = CategoryProfile(
    name="etf",
    tag="ETF",
    indicators=(ex.PRICE, ex.NAV, ex.AUM, ex.EXPENSE_RATIO, ex.VOLUME),
    keywords=("holdings", "expense ratio", "aum", "tracking"),
    symbols={
        "nifty bees": "NIFTYBEES",
        "gold bees": "GOLDBEES",
        "bank bees": "BANKBEES",
        "spy": "SPY",
        "qqq": "QQQ",
        "vanguard total": "VTI",
    },
    search_site="finance.yahoo.com",
    search_terms={
        "indian": "ETF NAV performance india NSE BSE",
        "us": "ETF price performance expense ratio holdings",
        "global": "ETF global performance holdings",
        "default": "ETF performance NAV",
    },
    direct=_etf_direct,
)

MUTUAL_FUND = CategoryProfile(
    name="mutual_fund",
    tag="MF",
    indicators=(ex.NAV, ex.AUM, ex.EXPENSE_RATIO, ex.RETURNS),
    keywords=("sip", "aum", "expense ratio", "fund", "scheme"),
    symbols={
        "sbi bluechip": "SBIBLUECHIP",
        "parag parikh": "PPFAS",
        "axis bluechip": "AXISBLUECHIP",
        "hdfc flexi cap": "HDFCFLEXI",
        "vanguard 500": "VFIAX",
        "fidelity contrafund": "FCNTX",
    },
    search_site="valueresearchonline.com",
    search_terms={
        "indian": "mutual fund NAV performance AMFI india SIP",
        "us": "mutual fund performance expense ratio morningstar",
        "global": "mutual fund global performance rating",
        "default": "mutual fund NAV performance",
    },
    direct=_mutual_fund_direct,
    default_region="indian",
)

PROFILES: Dict[str, CategoryProfile] = {
    p.name: p for p in (STOCK, CRYPTO, BOND, COMMODITY, ETF, MUTUAL_FUND)
}

# Caller-chosen pages (web search, single-URL scrape). Not a market-data
# category: it has no direct pages and is never looked up by name.
WEB = CategoryProfile(
    name="web",
    tag="WEB",
    indicators=(ex.PRICE, ex.MARKET_CAP, ex.CHANGE, ex.VOLUME),
    search_terms={"default": ""},
    direct=lambda symbol, region, text: [],
)


def get_profile(name: str) -> CategoryProfile:
    """Look up a category profile; accepts "mutual-fund" as well as "mutual_fund".

    Raises:
        ValueError: for an unknown category
    """
    key = name.strip().lower().replace("-", "_")
    try:
        return PROFILES[key]
    except KeyError:
        allowed = ", ".join(sorted(PROFILES))
        raise ValueError(f"Unknown category '{name}'. Allowed: {allowed}") from None
