"""
Network constants and contract ABIs for Monad testnet.

Gas parameters are fixed on the testnet (base fee 50 gwei), so every
mutating call uses the same gas price and a fixed gas budget.
"""

MONAD_TESTNET_RPC = "https://testnet-rpc.monad.xyz"
CHAIN_ID = 10143

WRAPPED_MON = "0x760AfE86e5de5fa0Ee542fc7B7B713e1c5425701"
AMBIENT_ROUTER = "0x3A76a8d1e40DFe2ce7a50bf771D63c97cbE76134"
AMBIENT_FACTORY = "0x6c35FC3f153A3C42363CABd9d1F7066045E16B73"

EXPLORER_TOKENS_API = "https://testnet.monadexplorer.com/api/tokens"

GAS_LIMIT = 150_000
APPROVE_GAS_LIMIT = 100_000
LIQUIDITY_GAS_LIMIT = GAS_LIMIT * 2
GAS_PRICE_GWEI = 50

DEADLINE_SECONDS = 20 * 60
MAX_UINT256 = 2**256 - 1
NATIVE_DECIMALS = 18
BPS_DENOMINATOR = 10_000

# Accepted as min-out when the router cannot estimate a price
MIN_OUTPUT_FLOOR = 1

RECEIPT_TIMEOUT_SECONDS = 120

# Predefined Monad testnet tokens: symbol -> (address, decimals)
DEFAULT_TOKENS = {
    "USDC": ("0xf817257fed379853cDe0fa4F97AB987181B1E5Ea", 6),
    "USDT": ("0x88b8E2161DEDC77EF4ab7585569D2415a1C1055D", 6),
    "WBTC": ("0xcf5a6076cfa32686c0Df13aBaDa2b40dec133F1d", 8),
    "WETH": ("0xB5a30b0FDc5EA94A52fDc42e3E9760Cb8449Fb37", 18),
    "WSOL": ("0x5387C85A4965769f6B0Df430638a1388493486F1", 9),
}

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
]

ROUTER_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"}
        ],
        "name": "getAmountsOut",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactETHForTokens",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactTokensForETH",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactTokensForTokens",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "token", "type": "address"},
            {"internalType": "uint256", "name": "amountTokenDesired", "type": "uint256"},
            {"internalType": "uint256", "name": "amountTokenMin", "type": "uint256"},
            {"internalType": "uint256", "name": "amountETHMin", "type": "uint256"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"}
        ],
        "name": "addLiquidityETH",
        "outputs": [
            {"internalType": "uint256", "name": "amountToken", "type": "uint256"},
            {"internalType": "uint256", "name": "amountETH", "type": "uint256"},
            {"internalType": "uint256", "name": "liquidity", "type": "uint256"}
        ],
        "stateMutability": "payable",
        "type": "function"
    },
]
