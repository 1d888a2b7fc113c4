CHAIN_ID_MONAD = 143

DEFAULT_RPC_URLS: dict[int, str] = {
    CHAIN_ID_MONAD: "https://rpc.monad.xyz",
}
