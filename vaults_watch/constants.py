"""Constants and configuration defaults for vault aggregation."""

# Off-chain vault registry (yearn API v1). Only the `/all` endpoint is used.
DEFAULT_REGISTRY_URL = "https://vaults.finance"

# Registry `type` of the vaults we can aggregate.
SUPPORTED_VAULT_TYPE = "v2"

# Vaults known to be safe even though the registry does not flag them as endorsed (lowercase).
PRE_ENDORSED: frozenset[str] = frozenset({"0xa258c4606ca8206d8aa700ce2143d7db854d168c"})

# StrategiesHelper: returns a vault's active strategies ordered by withdrawal queue.
STRATEGIES_HELPER_ADDRESS = "0xae813841436fe29b95a14AC701AFb1502C4CB789"

DEFAULT_TIMEOUT = 30
DEFAULT_BATCH_SIZE = 50

TOTAL_BASIS_POINTS = 10_000

# Allowed clock skew before a report timestamp counts as "in the future".
MAX_CLOCK_SKEW_SECONDS = 5 * 60

UNKNOWN_TEXT = "unknown"
INVALID_TIMESTAMP_TEXT = "invalid (future timestamp)"

# Vault view methods read for every vault. Older vault ABIs lack some of them,
# so they are always called through VAULT_VIEW_ABI (vault API 0.3.2).
VAULT_VIEW_METHODS: tuple[str, ...] = (
    "management",
    "governance",
    "guardian",
    "depositLimit",
    "totalAssets",
    "debtRatio",
    "totalDebt",
    "lastReport",
    "rewards",
)


def _view(name: str, output_type: str) -> dict:
    return {
        "inputs": [],
        "name": name,
        "outputs": [{"internalType": output_type, "name": "", "type": output_type}],
        "stateMutability": "view",
        "type": "function",
    }


VAULT_VIEW_ABI: list[dict] = [
    _view("management", "address"),
    _view("governance", "address"),
    _view("guardian", "address"),
    _view("depositLimit", "uint256"),
    _view("totalAssets", "uint256"),
    _view("debtRatio", "uint256"),
    _view("totalDebt", "uint256"),
    _view("lastReport", "uint256"),
    _view("rewards", "address"),
]

# Layouts of the `strategies(address)` struct returned by the vault.
# Vault API < 0.3.2 has `rateLimit`; later versions replaced it with min/max debt per harvest.
STRATEGY_LAYOUT_LEGACY = "legacy"
STRATEGY_LAYOUT_CURRENT = "current"
FIRST_CURRENT_LAYOUT_VERSION = (0, 3, 2)

STRATEGY_PARAMS_FIELDS: dict[str, tuple[str, ...]] = {
    STRATEGY_LAYOUT_LEGACY: (
        "performanceFee",
        "activation",
        "debtRatio",
        "rateLimit",
        "lastReport",
        "totalDebt",
        "totalGain",
        "totalLoss",
    ),
    STRATEGY_LAYOUT_CURRENT: (
        "performanceFee",
        "activation",
        "debtRatio",
        "minDebtPerHarvest",
        "maxDebtPerHarvest",
        "lastReport",
        "totalDebt",
        "totalGain",
        "totalLoss",
    ),
}


def _strategy_params_abi(layout: str) -> list[dict]:
    return [
        {
            "inputs": [{"internalType": "address", "name": "arg0", "type": "address"}],
            "name": "strategies",
            "outputs": [
                {"internalType": "uint256", "name": field_name, "type": "uint256"}
                for field_name in STRATEGY_PARAMS_FIELDS[layout]
            ],
            "stateMutability": "view",
            "type": "function",
        },
        {
            "inputs": [{"internalType": "address", "name": "strategy", "type": "address"}],
            "name": "creditAvailable",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function",
        },
    ]


VAULT_STRATEGY_ABIS: dict[str, list[dict]] = {
    STRATEGY_LAYOUT_LEGACY: _strategy_params_abi(STRATEGY_LAYOUT_LEGACY),
    STRATEGY_LAYOUT_CURRENT: _strategy_params_abi(STRATEGY_LAYOUT_CURRENT),
}

STRATEGIES_HELPER_ABI: list[dict] = [
    {
        "inputs": [{"internalType": "address", "name": "assetAddress", "type": "address"}],
        "name": "assetStrategiesAddresses",
        "outputs": [{"internalType": "address[]", "name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    },
]
