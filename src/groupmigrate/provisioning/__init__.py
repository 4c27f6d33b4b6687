"""Mail-enabled security group provisioning in Exchange Online."""

from .exchange import ExchangeError, ExchangeOnlineClient
from .provisioner import GroupProvisioner, make_alias

__all__ = [
    "ExchangeError",
    "ExchangeOnlineClient",
    "GroupProvisioner",
    "make_alias",
]
