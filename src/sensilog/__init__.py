"""
SensiLog - Sensitivity and Gear Log for Valorant

Players record their mouse sensitivity, DPI and peripherals over time,
sync their match history from the Riot API and see how performance moves
with each settings change.

Usage:
    sensilog-web --port 8000
"""

__version__ = "0.1.0"
__author__ = "SensiLog Contributors"
