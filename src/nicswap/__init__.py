"""nicswap - Azure VM NIC replacement CLI

Philosophy:
- One VM at a time, every step observable
- Roll back what we touched, never what we didn't
- Explicit outcomes instead of exceptions across the workflow boundary

nicswap replaces the network interface of Azure VMs while preserving the
secondary private IP (promoted to the new NIC's static primary address)
and the NSG binding. It can also toggle accelerated networking in place.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
