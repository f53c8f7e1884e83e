# jobboard/__init__.py
"""Job/role listing board with signed edit links and a retention sweeper."""

__version__ = "0.1.0"
