from .shift_pool_config import CommuteConfig, ShiftPoolConfig, shift_pool_config

__all__ = ["CommuteConfig", "ShiftPoolConfig", "shift_pool_config"]
