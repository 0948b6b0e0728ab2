"""
Configuration system for ndgrad.

Loads YAML configs that pick the array backend and the autograd defaults.

Example config.yaml:
```
engine:
  backend: numpy
  dtype: float32

autograd:
  grad_req: write
  retain_graph: false
  train_mode: true
```
"""

import yaml
import os
from typing import Dict, Optional, Any
from dataclasses import dataclass, field


BACKENDS = ('numpy', 'pytorch')


@dataclass
class EngineConfig:
    """Which array backend to use and its default dtype."""
    backend: str = 'numpy'
    dtype: str = 'float32'


@dataclass
class AutogradConfig:
    """Defaults applied when autograd calls leave an argument unset."""
    grad_req: str = 'write'  # Policy used by attach_grad()
    retain_graph: bool = False  # Keep graph after backward()
    train_mode: bool = True  # Mode for backward rules


@dataclass
class Config:
    """
    Global configuration manager for ndgrad.

    Starts from built-in defaults; load() overlays a YAML file on top.
    """
    engine: EngineConfig = field(default_factory=EngineConfig)
    autograd: AutogradConfig = field(default_factory=AutogradConfig)
    _config_file: Optional[str] = None

    def load(self, config_file: str):
        """Load configuration from YAML file."""
        if not os.path.exists(config_file):
            raise FileNotFoundError(f"Config file not found: {config_file}")

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f)

        self._config_file = config_file

        if raw_config is None:
            return

        self.update(raw_config)

    def update(self, raw_config: Dict[str, Any]):
        """Overlay settings from a parsed config dict."""
        if not isinstance(raw_config, dict):
            raise ValueError(f"Config must be a mapping, got {type(raw_config).__name__}")

        if 'engine' in raw_config:
            self.engine = self._parse_engine_config(raw_config['engine'] or {})
        if 'autograd' in raw_config:
            self.autograd = self._parse_autograd_config(raw_config['autograd'] or {})

    def _parse_engine_config(self, engine_dict: Dict[str, Any]) -> EngineConfig:
        """Parse the engine section from dict."""
        backend = engine_dict.get('backend', self.engine.backend)
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend: {backend}")

        return EngineConfig(
            backend=backend,
            dtype=str(engine_dict.get('dtype', self.engine.dtype)),
        )

    def _parse_autograd_config(self, autograd_dict: Dict[str, Any]) -> AutogradConfig:
        """Parse the autograd section from dict."""
        from ndgrad.autograd.variables import GradReq

        grad_req = autograd_dict.get('grad_req', self.autograd.grad_req)
        # Raises ArgumentError for unknown tags
        GradReq.parse(grad_req)

        return AutogradConfig(
            grad_req=grad_req,
            retain_graph=bool(autograd_dict.get('retain_graph', self.autograd.retain_graph)),
            train_mode=bool(autograd_dict.get('train_mode', self.autograd.train_mode)),
        )

    def backend(self) -> str:
        """Backend name, with NDGRAD_BACKEND taking precedence over the file."""
        return os.environ.get('NDGRAD_BACKEND', self.engine.backend)

    def load_from_env(self, env_var: str = 'NDGRAD_CONFIG'):
        """
        Load configuration from environment variable.

        Args:
            env_var: Environment variable name (default: NDGRAD_CONFIG)
        """
        from ndgrad.debug import verbose_print

        config_path = os.environ.get(env_var, None)
        if config_path:
            verbose_print(f"ndgrad: Loading config from {config_path}")
            self.load(config_path)

    def clear(self):
        """Reset to built-in defaults."""
        self.engine = EngineConfig()
        self.autograd = AutogradConfig()
        self._config_file = None


# Global config instance
_config = Config()


def load_config(config_file: str):
    """Load configuration from YAML file."""
    _config.load(config_file)


def get_config() -> Config:
    """Get the global config instance."""
    return _config
