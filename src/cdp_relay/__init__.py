"""
CDP Relay

讓 CDP Client（例如 Playwright）透過瀏覽器 Extension 操作瀏覽器的 WebSocket 中繼伺服器
"""

__version__ = "1.0.0"
