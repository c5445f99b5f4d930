"""

docrag/core/config_manager.py

Configuration loader for docrag.

What is the Configuration Manager?
-----------------------------------
The ConfigManager turns YAML files into a validated RAGConfig:
- Loading the global defaults from configs/global_config.yaml
- Deep-merging an optional named profile (configs/profiles/<name>.yaml) over them
- Injecting environment variables (e.g. ${GEMINI_API_KEY})
- Validating the result against the Pydantic schemas in docrag/models/rag_config.py

Configuration Layout:
---------------------
configs/
  ├── global_config.yaml         # Defaults shared by every profile
  └── profiles/                  # Optional overrides
      ├── local.yaml
      └── gemini.yaml

Example Usage:
--------------
config_mgr = ConfigManager()
config = config_mgr.load_config()            # global defaults only
config = config_mgr.load_config("gemini")    # global <- profiles/gemini.yaml

print(config.chunking.chunk_size)          # 1000
print(config.retrieval.overview_n_results) # 25

"""

import os
import glob
import copy
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from pydantic import ValidationError

from docrag.models.rag_config import RAGConfig

# Configure logging
logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Central configuration manager.

    Responsibilities:
    - Load global defaults and profile overrides
    - Inject environment variables
    - Validate into RAGConfig

    A missing global_config.yaml is not an error: every RAGConfig field has
    a default, so the manager then validates an empty dict.
    """

    def __init__(
            self,
            config_dir: str = "configs",
            profile_dir: str = "profiles",
            global_config_file: str = "global_config.yaml"
    ):
        """
        Initialize ConfigManager.

        Parameters:
        -----------
        config_dir : str
            Base configuration directory
        profile_dir : str
            Subdirectory for profile configs
        global_config_file : str
            Global configuration filename
        """
        self.config_dir = Path(config_dir)
        self.profile_dir = self.config_dir / profile_dir
        self.global_config_file = self.config_dir / global_config_file

        self.global_config = self._load_yaml(self.global_config_file) or {}

        logger.info(
            f"ConfigManager initialized:\n"
            f"  Config dir: {self.config_dir.absolute()}\n"
            f"  Global config: {self.global_config_file.name}\n"
            f"  Profiles dir: {self.profile_dir}"
        )

    @staticmethod
    def _load_yaml(path: Path) -> Optional[Dict]:
        """Load YAML file and return dict."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
                logger.debug(f"Loaded YAML from {path}")
                return data
        except Exception as e:
            logger.error(f"Failed to load YAML from {path}: {e}")
            raise

    def _inject_env_vars(self, config: Any) -> None:
        """
        Recursively inject environment variables.

        Replaces ${ENV_VAR} values with the variable's value. Unset variables
        become None so optional fields fall back to their defaults.
        """
        if isinstance(config, dict):
            for k, v in config.items():
                if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
                    env_var = v[2:-1]
                    env_value = os.getenv(env_var)
                    if env_value:
                        config[k] = env_value
                        logger.debug(f"Injected env var: {env_var}")
                    else:
                        config[k] = None
                        logger.warning(f"Environment variable not set: {env_var}")
                else:
                    self._inject_env_vars(v)
        elif isinstance(config, list):
            for entry in config:
                self._inject_env_vars(entry)

    @staticmethod
    def _merge_dicts(base: Dict, override: Dict) -> None:
        """
        Deep merge override into base dictionary.

        Nested dicts merge recursively; any other value in override replaces
        the value in base.
        """
        for k, v in override.items():
            if k in base and isinstance(base[k], dict) and isinstance(v, dict):
                ConfigManager._merge_dicts(base[k], v)
            else:
                base[k] = v

    def get_all_profile_names(self) -> List[str]:
        """Names of the available profiles (file stems under profiles/)."""
        yaml_files = glob.glob(str(self.profile_dir / "*.yaml"))
        names = sorted(Path(f).stem for f in yaml_files)
        logger.debug(f"Found {len(names)} profiles: {names}")
        return names

    def load_config(self, profile: Optional[str] = None) -> RAGConfig:
        """
        Load and validate configuration.

        Workflow:
        ---------
        1. Copy global defaults
        2. Deep merge the profile (if given) over them
        3. Inject environment variables
        4. Validate against RAGConfig

        Parameters:
        -----------
        profile : str, optional
            Profile name (without .yaml extension)

        Returns:
        --------
        RAGConfig:
            Validated configuration

        Raises:
        -------
        FileNotFoundError:
            If the profile file doesn't exist
        ValidationError:
            If the merged configuration is invalid
        """
        merged = copy.deepcopy(self.global_config)

        if profile:
            profile_file = self.profile_dir / f"{profile}.yaml"
            if not profile_file.exists():
                raise FileNotFoundError(
                    f"Profile config not found: {profile_file}\n"
                    f"Available profiles: {self.get_all_profile_names()}"
                )
            self._merge_dicts(merged, self._load_yaml(profile_file) or {})
            merged.setdefault("name", profile)

        self._inject_env_vars(merged)

        try:
            config = RAGConfig(**merged)
        except ValidationError as e:
            logger.error(f"Config validation failed for profile '{profile or 'global'}':\n{e}")
            raise

        logger.info(
            f"✅ Config loaded and validated: {config.name}\n"
            f"   Embeddings: {config.embeddings.provider} ({config.embeddings.model_name})\n"
            f"   Vector Store: {config.vector_store.provider} ({config.vector_store.mode})\n"
            f"   OCR: {config.ocr.primary} -> {config.ocr.secondary or 'none'}\n"
            f"   Chunking: {config.chunking.chunk_size}/{config.chunking.overlap}"
        )
        return config

    def save_profile(self, profile: str, config: Dict) -> Path:
        """
        Save a profile override dictionary to profiles/<profile>.yaml.

        Returns the written path.
        """
        self.profile_dir.mkdir(parents=True, exist_ok=True)
        profile_file = self.profile_dir / f"{profile}.yaml"
        with open(profile_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, sort_keys=False, default_flow_style=False)
        logger.info(f"Saved profile config: {profile_file}")
        return profile_file
