"""
niri-sticky

Sticky windows for the niri compositor: windows that follow you across
workspace switches, plus a staging workspace to park them on.
"""

__version__ = "1.0.0"
__author__ = "NixOS Configuration Team"
