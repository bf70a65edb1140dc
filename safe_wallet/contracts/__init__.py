from safe_wallet.contracts.daily_limit import DailyLimitModule
from safe_wallet.contracts.handler import CompatibilityFallbackHandler
from safe_wallet.contracts.libraries import SignMessageLib
from safe_wallet.contracts.proxy import SafeProxy
from safe_wallet.contracts.proxy_factory import ProxyFactory, calculate_proxy_address
from safe_wallet.contracts.safe import VERSION, Safe
from safe_wallet.contracts.social_recovery import SocialRecoveryModule
from safe_wallet.contracts.token import ERC20

__all__ = [
    "CompatibilityFallbackHandler",
    "DailyLimitModule",
    "ERC20",
    "ProxyFactory",
    "Safe",
    "SafeProxy",
    "SignMessageLib",
    "SocialRecoveryModule",
    "VERSION",
    "calculate_proxy_address",
]
