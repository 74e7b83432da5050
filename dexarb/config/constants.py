"""
Constants and static configuration for the DEX arbitrage bot
"""

# Token Mappings (Symbol -> Address), Ethereum mainnet
TOKEN_ADDRESSES = {
    "WETH": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    "USDC": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    "USDT": "0xdAC17F958D2ee523a2206206994597C13D831ec7",
    "WBTC": "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
    "DAI": "0x6B175474E89094C44Da98b954EedeAC495271d0F"
}

# Standard Fee Tiers for Uniswap V3
UNISWAP_V3_FEE_TIERS = [500, 3000, 10000]  # 0.05%, 0.3%, 1%

DEFAULT_VENUES = [
    {
        "name": "Uniswap V2",
        "type": "UniswapV2",
        "router": "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
        "factory": "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f",
        "fee_bps": 30
    },
    {
        "name": "SushiSwap",
        "type": "SushiSwap",
        "router": "0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F",
        "factory": "0xC0AEe478e3658e2610c5F7A4A2E1777cE9e4f2Ac",
        "fee_bps": 30
    },
    {
        "name": "Uniswap V3",
        "type": "UniswapV3",
        "router": "0xE592427A0AEce92De3Edee1F18E0157C05861564",
        "factory": "0x1F98431c8aD98523631AE4a59f267346ea31F984",
        "quoter": "0xb27308f9F90D607463bb33eA1BeBb41C27CE5AB6",
        "fee_bps": 30,
        "fee_tiers": UNISWAP_V3_FEE_TIERS,
        "enabled": False
    }
]

DEFAULT_FLASH_LOAN_PROVIDERS = [
    {"name": "aave", "address": "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2", "fee_bps": 9},
    {"name": "balancer", "address": "0xBA12222222228d8Ba445958a75a0704d566BF2C8", "fee_bps": 0}
]

# Default Pairs to Monitor ("tokenA:tokenB")
MONITORED_PAIRS = [
    f"{TOKEN_ADDRESSES['WETH']}:{TOKEN_ADDRESSES['USDC']}"
]

EXPLORER_URLS = {
    1: "https://etherscan.io",
    5: "https://goerli.etherscan.io",
    11155111: "https://sepolia.etherscan.io"
}

# Flash-loan callback plus two swaps
ARBITRAGE_GAS_UNITS = 400_000
V2_SWAP_GAS_UNITS = 150_000
V3_SWAP_GAS_UNITS = 180_000
