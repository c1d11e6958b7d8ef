"""
Market Brain — Symbol Classifier
─────────────────────────────────
Pure functions. No side effects. No data fetching.
Take a raw user symbol, return an immutable AssetClassification.

Rules, first match wins:
  1. 0x + 40 hex                          → contract / evm
  2. base58, 32–44 chars (no 0 O I l)     → contract / solana
  -  LON:VOD style exchange prefix        → stock (Yahoo-style suffix)
  3. SYMBOL:network                       → crypto, explicit network
  4. -USD / -USDT / USDT suffix, or a
     base on the known-crypto list         → crypto
  5. anything else                        → stock
"""

import re
from typing import Optional, Tuple

from market_engine.errors import InvalidSymbol
from market_engine.models.payloads import (
    ASSET_CONTRACT, ASSET_CRYPTO, ASSET_STOCK, AssetClassification,
)

MAX_SYMBOL_LEN = 64

EVM_ADDRESS    = re.compile(r"^0x[a-fA-F0-9]{40}$")
SOLANA_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
VALID_SYMBOL   = re.compile(r"^[A-Za-z0-9.\-_:^=]+$")
NETWORK_NAME   = re.compile(r"^[a-z0-9_\-]{2,32}$")

CRYPTO_SUFFIXES = ["-USDT", "-USD"]
QUOTE_SUFFIXES  = ["USDT"]

# ── Known crypto → CoinGecko id ────────────────────────────────
# Also the allow-list for rule 4.
KNOWN_CRYPTO = {
    "BTC": "bitcoin",         "ETH": "ethereum",          "XRP": "ripple",
    "LTC": "litecoin",        "ADA": "cardano",           "SOL": "solana",
    "DOGE": "dogecoin",       "DOT": "polkadot",          "BNB": "binancecoin",
    "LINK": "chainlink",      "UNI": "uniswap",           "MATIC": "matic-network",
    "SHIB": "shiba-inu",      "TRX": "tron",              "AVAX": "avalanche-2",
    "ATOM": "cosmos",         "XMR": "monero",            "PEPE": "pepe",
    "ARB": "arbitrum",        "OP": "optimism",           "APT": "aptos",
    "SUI": "sui",             "SEI": "sei-network",       "INJ": "injective-protocol",
    "FET": "fetch-ai",        "RENDER": "render-token",   "TAO": "bittensor",
    "NEAR": "near",           "FTM": "fantom",            "ALGO": "algorand",
    "VET": "vechain",         "HBAR": "hedera-hashgraph", "ICP": "internet-computer",
    "FIL": "filecoin",        "SAND": "the-sandbox",      "MANA": "decentraland",
    "AXS": "axie-infinity",   "AAVE": "aave",             "MKR": "maker",
    "CRV": "curve-dao-token", "LDO": "lido-dao",          "RPL": "rocket-pool",
    "GMX": "gmx",             "DYDX": "dydx",             "CAKE": "pancakeswap-token",
    "WIF": "dogwifcoin",      "BONK": "bonk",             "FLOKI": "floki",
}

# ── Stablecoins: never shown as movers ────────────────────────
STABLECOINS = {
    "USDT", "USDC", "BUSD", "DAI", "TUSD", "FRAX",
    "UST", "USDP", "FDUSD", "PYUSD", "USDE",
}

# ── Exchange prefixes → Yahoo-style suffix ─────────────────────
EXCHANGE_PREFIXES = {
    "LON": ".L",
    "EPA": ".PA",
    "ETR": ".DE",
    "AMS": ".AS",
    "TSX": ".TO",
    "ASX": ".AX",
}


def is_evm_address(value: str) -> bool:
    return bool(EVM_ADDRESS.match(value))


def is_solana_address(value: str) -> bool:
    return not value.startswith("0x") and bool(SOLANA_ADDRESS.match(value))


def split_crypto_pair(symbol: str) -> Tuple[str, str]:
    """BTC-USD → (BTC, USD); BTCUSDT → (BTC, USDT); BTC → (BTC, USD)."""
    s = symbol.upper()
    if "-" in s:
        base, quote = s.split("-", 1)
        return base, quote or "USD"
    for suffix in QUOTE_SUFFIXES:
        if s.endswith(suffix) and len(s) > len(suffix):
            return s[: -len(suffix)], suffix
    return s, "USD"


def is_known_crypto(symbol: str) -> bool:
    s = symbol.upper()
    if any(s.endswith(suffix) for suffix in CRYPTO_SUFFIXES):
        return True
    if any(s.endswith(suffix) and len(s) > len(suffix) for suffix in QUOTE_SUFFIXES):
        return True
    base, _ = split_crypto_pair(s)
    return base in KNOWN_CRYPTO


def _validate(raw: Optional[str]) -> str:
    if raw is None or not isinstance(raw, str):
        raise InvalidSymbol("Symbol is required")
    symbol = raw.strip()
    if not symbol:
        raise InvalidSymbol("Symbol is required")
    if len(symbol) > MAX_SYMBOL_LEN:
        raise InvalidSymbol(f"Symbol longer than {MAX_SYMBOL_LEN} characters")
    if not VALID_SYMBOL.match(symbol):
        raise InvalidSymbol(f"Symbol contains invalid characters: {symbol!r}")
    return symbol


def _contract(address: str, network: Optional[str], explicit: bool) -> AssetClassification:
    normalised = address.lower() if address.startswith("0x") else address
    return AssetClassification(
        asset_class=ASSET_CONTRACT,
        symbol=normalised,
        network=network,
        contract_address=normalised,
        explicit_network=explicit,
    )


def _crypto(symbol: str, network: Optional[str] = None) -> AssetClassification:
    base, quote = split_crypto_pair(symbol)
    if not base:
        raise InvalidSymbol(f"Missing base asset in {symbol!r}")
    return AssetClassification(
        asset_class=ASSET_CRYPTO,
        symbol=f"{base}-{quote}",
        network=network,
        base=base,
        quote=quote,
        explicit_network=network is not None,
    )


def classify_symbol(raw: str) -> AssetClassification:
    symbol = _validate(raw)

    # 1 / 2: bare contract addresses
    if is_evm_address(symbol):
        return _contract(symbol, "evm", explicit=False)
    if is_solana_address(symbol):
        return _contract(symbol, "solana", explicit=False)

    if ":" in symbol:
        head, network = symbol.rsplit(":", 1)
        prefix = head.upper()

        # LON:VOD is an exchange prefix, not a network hint
        suffix = EXCHANGE_PREFIXES.get(prefix)
        if suffix and network:
            return AssetClassification(asset_class=ASSET_STOCK, symbol=network.upper() + suffix)

        network = network.lower()
        if not head or not NETWORK_NAME.match(network):
            raise InvalidSymbol(f"Malformed network hint in {symbol!r}")
        if is_evm_address(head):
            return _contract(head, network, explicit=True)
        if is_solana_address(head):
            return _contract(head, network, explicit=True)
        # 3: explicit network
        return _crypto(head, network)

    # 4: crypto suffix or allow-list
    if is_known_crypto(symbol):
        return _crypto(symbol)

    # 5: stock
    return AssetClassification(asset_class=ASSET_STOCK, symbol=symbol.upper())
