from medichat.auth.identity import Identity, IdentityProvider, SupabaseIdentityProvider
from medichat.auth.tokens import TokenService

__all__ = ["Identity", "IdentityProvider", "SupabaseIdentityProvider", "TokenService"]
