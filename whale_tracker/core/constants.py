from decimal import Decimal

# ==============================================================================
# SOLANA CONSTANTS
# ==============================================================================
WRAPPED_SOL = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

STABLECOIN_MINTS = frozenset({USDC_MINT, USDT_MINT})

# Mints that price a swap rather than being the traded token
QUOTE_MINTS = frozenset({WRAPPED_SOL, USDC_MINT, USDT_MINT})

LAMPORTS_PER_SOL = Decimal(10) ** 9

# Helius enhanced transaction types that carry a token swap
SWAP_TYPES = frozenset({"SWAP"})

# ==============================================================================
# PRICING
# ==============================================================================
SOL_PRICE_USD_ESTIMATE = Decimal("100")  # Placeholder until a price feed is wired in
JUPITER_PRICE_API = "https://api.jup.ag/price/v2"

# ==============================================================================
# DISPLAY
# ==============================================================================
SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
SOLSCAN_ACCOUNT_URL = "https://solscan.io/account/{address}"
