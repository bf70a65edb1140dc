#!/usr/bin/python3

import logging

from safe_wallet import Chain, configure_logging, get_config
from safe_wallet.client import deploy_safe
from safe_wallet.contracts import (
    ERC20,
    CompatibilityFallbackHandler,
    DailyLimitModule,
    ProxyFactory,
    Safe,
    SignMessageLib,
    SocialRecoveryModule,
)

logger = logging.getLogger("deploy")


def main():
    config = get_config()
    configure_logging(config.log_level)
    chain = Chain(config)

    owner = chain.accounts[0]
    friends = [chain.accounts[1].address, chain.accounts[2].address]

    singleton = chain.deploy(Safe, tx={"from": owner})
    factory = chain.deploy(ProxyFactory, tx={"from": owner})
    handler = chain.deploy(CompatibilityFallbackHandler, tx={"from": owner})
    chain.deploy(SignMessageLib, tx={"from": owner})
    chain.deploy(DailyLimitModule, tx={"from": owner})
    chain.deploy(SocialRecoveryModule, config.recovery_period, tx={"from": owner})

    if config.network == "development":
        uni = chain.deploy(ERC20, "Uni", "uni", 18, tx={"from": owner})
        uni.mint(owner, 100_000 * 10**18, {"from": owner})

    safe = deploy_safe(
        factory,
        singleton,
        [owner.address] + friends,
        2,
        {"from": owner},
        fallback_handler=handler,
        salt_nonce=0,
    )
    logger.debug("config %s", config.summary())
    logger.info("%s (chain %d): wallet %s, owners %s", config.network, config.chain_id, safe.address, safe.getOwners())
    return safe


if __name__ == "__main__":
    main()
