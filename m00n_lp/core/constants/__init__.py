ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
NATIVE_CURRENCY = ZERO_ADDRESS
EMPTY_HOOK_DATA = b""
# v4-periphery ActionConstants.MSG_SENDER
MSG_SENDER = "0x0000000000000000000000000000000000000001"
