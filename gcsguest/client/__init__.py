"""Utility VM configuration, option parsing and layer file helpers."""