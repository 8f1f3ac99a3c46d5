"""
Simple utilities shared by the simulation code.
"""
from .logging import get_level, get_logger, set_level
