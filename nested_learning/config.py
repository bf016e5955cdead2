"""
Configuration Module for the Nested Learning core
Central configuration for level hierarchy, optimizer and memory settings
"""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class HierarchyConfig:
    """Optimization level hierarchy configuration"""
    num_levels: int = 3
    base_learning_rate: float = 1e-3

    # Level i fires with frequency frequency_decay ** i: [1.0, 0.1, 0.01, ...]
    frequency_decay: float = 0.1

    # Level i compresses its context to (1 - compression_step * i) of its width
    compression_step: float = 0.2
    enable_context_flow: bool = True


@dataclass
class OptimizerConfig:
    """Nested optimizer hyperparameters"""
    optimizer: str = "adam"  # adam, amsgrad, sgd
    learning_rate: float = 1e-3

    # Adam
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    amsgrad: bool = False

    # SGD
    momentum: float = 0.0
    nesterov: bool = False

    weight_decay: float = 0.0

    # Gradient clipping (per-gradient L2 norm)
    gradient_clipping: bool = False
    clip_threshold: float = 5.0


@dataclass
class MemoryConfig:
    """Surprise-based and continuum memory configuration"""
    capacity: int = 100
    surprise_threshold: float = 0.3
    decay_rate: float = 0.001
    boost_factor: float = 0.1

    # Forgetting (MemoryModule) and consolidation (ContinuumMemorySystem)
    forgetting_rate: float = 0.01
    consolidation_threshold: float = 0.3
    consolidation_interval: int = 100
    type_capacities: Dict[str, int] = field(default_factory=lambda: {
        'SHORT_TERM': 50,
        'MEDIUM_TERM': 100,
        'LONG_TERM': 200,
        'ULTRA_LONG_TERM': 500,
    })


@dataclass
class SystemConfig:
    """System and logging configuration"""
    log_level: str = "INFO"
    log_dir: str = "logs"
    seed: int = 42


class Config:
    """Master configuration class"""

    def __init__(self):
        self.hierarchy = HierarchyConfig()
        self.optimizer = OptimizerConfig()
        self.memory = MemoryConfig()
        self.system = SystemConfig()

    def to_dict(self):
        """Convert configuration to dictionary"""
        return {
            'hierarchy': dict(self.hierarchy.__dict__),
            'optimizer': dict(self.optimizer.__dict__),
            'memory': dict(self.memory.__dict__),
            'system': dict(self.system.__dict__),
        }

    def update_from_dict(self, config_dict: dict):
        """Update configuration from dictionary"""
        for category, values in config_dict.items():
            if hasattr(self, category):
                config_obj = getattr(self, category)
                for key, value in values.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)


# Default configuration instance
default_config = Config()


def get_fast_adaptation_config() -> Config:
    """Shallow hierarchy with aggressive fast levels and a short memory horizon"""
    config = Config()

    config.hierarchy.num_levels = 2
    config.hierarchy.base_learning_rate = 1e-2
    config.hierarchy.frequency_decay = 0.5

    config.optimizer.learning_rate = 1e-2
    config.optimizer.gradient_clipping = True
    config.optimizer.clip_threshold = 1.0

    # Forget quickly
    config.memory.capacity = 32
    config.memory.decay_rate = 0.05

    return config


def get_long_horizon_config() -> Config:
    """Deep hierarchy for continual learning over long runs"""
    config = Config()

    config.hierarchy.num_levels = 4
    config.hierarchy.frequency_decay = 0.1
    config.hierarchy.compression_step = 0.1

    config.optimizer.optimizer = "amsgrad"
    config.optimizer.amsgrad = True
    config.optimizer.weight_decay = 1e-4

    config.memory.capacity = 1000
    config.memory.decay_rate = 1e-4
    config.memory.consolidation_interval = 500

    return config
