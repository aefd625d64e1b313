"""
elfcopyflat Shared Module
=========================

Configuration, logging, and console utilities used by the elfcopyflat
command-line tool.
"""

from shared.config import AppConfig, FlatCopyConfig, GlobalConfig

__all__ = ["AppConfig", "FlatCopyConfig", "GlobalConfig"]
