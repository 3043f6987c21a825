"""Environment variable files and expansion"""

import logging
import os
import re
from typing import Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class EnvManager:
    """Holds a snapshot of environment variables and loads/expands more of them"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """Initialize environment manager

        Args:
            environ: Variables to start from (default: a copy of os.environ)
        """
        self.env: Dict[str, str] = dict(os.environ if environ is None else environ)

    def load_file(self, file_path: str) -> Dict[str, str]:
        """Load environment variables from a .env file

        Args:
            file_path: Path to .env file

        Returns:
            Dictionary of loaded variables
        """
        file_path = os.path.expanduser(file_path)
        variables = {}

        if not os.path.exists(file_path):
            logger.warning(f"Environment file not found: {file_path}")
            return variables

        with open(file_path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith("#"):
                    continue

                if line.startswith("export "):
                    line = line[len("export "):].lstrip()

                if "=" not in line:
                    logger.warning(f"Invalid line in {file_path}:{line_num}: {line}")
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()

                if value and value[0] in ('"', "'"):
                    quote = value[0]
                    if len(value) > 1 and value.endswith(quote):
                        value = value[1:-1]
                    else:
                        logger.warning(f"Unclosed quote in {file_path}:{line_num}")

                variables[key] = value
                logger.debug(f"Loaded {key} from {file_path}")

        logger.debug(f"Loaded {len(variables)} variables from {file_path}")
        return variables

    def load_files(self, file_paths: Iterable[str]) -> Dict[str, str]:
        """Load environment variables from multiple files

        Later files override earlier ones.
        """
        merged = {}
        for file_path in file_paths:
            merged.update(self.load_file(file_path))
        return merged

    @staticmethod
    def parse_assignments(assignments: Iterable[str]) -> Dict[str, str]:
        """Turn KEY=VALUE strings into a dict

        A bare KEY takes no value and is skipped with a warning.
        """
        variables = {}
        for item in assignments:
            if "=" not in item:
                logger.warning(f"Ignoring environment entry without '=': {item}")
                continue
            key, value = item.split("=", 1)
            variables[key.strip()] = value
        return variables

    @staticmethod
    def expand_value(value: str, variables: Mapping[str, str]) -> str:
        """Expand variables in a string

        Supports:
        - $VAR_NAME or ${VAR_NAME}
        - ${VAR_NAME:-default_value} (default if not set)
        - ${VAR_NAME:?error message} (error if not set)

        Args:
            value: String to expand
            variables: Dictionary of variables

        Returns:
            Expanded string
        """
        if not isinstance(value, str):
            return value

        def replace_var(match):
            var_expr = match.group(1)

            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return variables.get(var_name.strip(), default)

            if ":?" in var_expr:
                var_name, error_msg = var_expr.split(":?", 1)
                var_name = var_name.strip()
                if var_name not in variables:
                    raise ValueError(f"Required variable not set: {var_name} ({error_msg})")
                return variables[var_name]

            return variables.get(var_expr, match.group(0))

        result = re.sub(r"\$\{([^}]+)\}", replace_var, value)

        # Simple $VAR_NAME references
        result = re.sub(r"\$([A-Za-z_][A-Za-z0-9_]*)", lambda m: variables.get(m.group(1), m.group(0)), result)

        return result

    @staticmethod
    def expand_dict(config: Dict, variables: Mapping[str, str]) -> Dict:
        """Recursively expand variables in a configuration dictionary"""
        expanded = {}

        for key, value in config.items():
            if isinstance(value, str):
                expanded[key] = EnvManager.expand_value(value, variables)
            elif isinstance(value, dict):
                expanded[key] = EnvManager.expand_dict(value, variables)
            elif isinstance(value, list):
                expanded[key] = [
                    EnvManager.expand_value(item, variables) if isinstance(item, str)
                    else EnvManager.expand_dict(item, variables) if isinstance(item, dict)
                    else item
                    for item in value
                ]
            else:
                expanded[key] = value

        return expanded
