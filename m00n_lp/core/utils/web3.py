from contextlib import asynccontextmanager

from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3

from m00n_lp.core.config import get_rpc_urls
from m00n_lp.core.constants.base import DEFAULT_HTTP_TIMEOUT


def _get_rpcs_for_chain_id(chain_id: int) -> list:
    mapping = get_rpc_urls()
    rpcs = mapping.get(str(chain_id))
    if rpcs is None:
        rpcs = mapping.get(chain_id)  # allow int keys
    if rpcs is None:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    if isinstance(rpcs, str):
        return [rpcs]
    return rpcs


def _get_web3(rpc: str) -> AsyncWeb3:
    provider = AsyncHTTPProvider(
        rpc,
        request_kwargs={
            "headers": AsyncHTTPProvider.get_request_headers(),
            "timeout": DEFAULT_HTTP_TIMEOUT,
        },
    )
    return AsyncWeb3(provider)


def get_web3s_from_chain_id(chain_id: int) -> list[AsyncWeb3]:
    rpcs = _get_rpcs_for_chain_id(chain_id)
    return [_get_web3(rpc) for rpc in rpcs]


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    web3s = get_web3s_from_chain_id(chain_id)
    logger.debug(f"Using RPC {web3s[0].provider.endpoint_uri} for chain {chain_id}")
    try:
        yield web3s[0]
    finally:
        await web3s[0].provider.disconnect()
