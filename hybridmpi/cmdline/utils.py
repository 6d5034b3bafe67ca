from typing import Any, Dict, List, Optional, Sequence, Tuple, cast

import click

from hybridmpi.config import InvalidSettings, Settings, load_settings


def list_to_dict(arg_list: Sequence[str]) -> Dict[str, str]:
    return dict(cast(Tuple[str, str], arg.split("=", maxsplit=1)) for arg in arg_list)


def validate_env(ctx: Any, param: Any, value: Sequence[str]) -> Dict[str, str]:
    try:
        return list_to_dict(value)
    except ValueError:
        raise click.BadParameter("needs to be in format KEY=VALUE")


def split_hosts(ctx: Any, param: Any, value: Sequence[str]) -> List[str]:
    """Accepts both `-H a -H b` and `-H a,b`"""
    return [host.strip() for arg in value for host in arg.split(",") if host.strip()]


def load_cli_settings(config_path: Optional[str] = None) -> Settings:
    try:
        return load_settings(config_path)
    except FileNotFoundError as e:
        raise click.BadParameter(str(e), param_hint="--config")
    except InvalidSettings as e:
        raise click.ClickException(str(e))
