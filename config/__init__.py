"""Configuration management for AMACI rounds."""

from .config import CryptoConfig, RoundConfig, SystemConfig, load_config, save_config

__all__ = ['RoundConfig', 'CryptoConfig', 'SystemConfig', 'load_config', 'save_config']
