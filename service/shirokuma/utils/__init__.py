from .masking import mask_secrets, register_secret

__all__ = ["mask_secrets", "register_secret"]
