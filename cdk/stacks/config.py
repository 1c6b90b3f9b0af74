"""
Deployment settings for the WordPress stack, read from cdk/config.xml.
"""
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.xml"


@dataclass(frozen=True)
class EnvironmentConfig:
    account: str
    region: str
    project_tag: str


@dataclass(frozen=True)
class SiteConfig:
    domain_name: str
    host_prefix: str
    cluster_name: str
    log_group_name: str
    allowed_cidrs: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class DatabaseConfig:
    name: str
    username: str
    secret_name: str
    min_capacity: float  # Aurora capacity units
    max_capacity: float
    auto_pause_minutes: int


@dataclass(frozen=True)
class ContainerConfig:
    image: str
    cpu: int
    memory_mib: int
    port: int


@dataclass(frozen=True)
class StorageConfig:
    file_system_name: str
    mount_path: str


@dataclass(frozen=True)
class ScalingConfig:
    min_tasks: int
    max_tasks: int
    cpu_target_percent: int
    memory_target_percent: int


@dataclass(frozen=True)
class HealthCheckConfig:
    path: str
    healthy_http_codes: str
    grace_period_seconds: int


@dataclass(frozen=True)
class WordpressConfig:
    environment: EnvironmentConfig
    site: SiteConfig
    database: DatabaseConfig
    container: ContainerConfig
    storage: StorageConfig
    scaling: ScalingConfig
    health_check: HealthCheckConfig


def _text(root: ET.Element, path: str) -> str:
    entry = root.find(path)
    value = entry.text.strip() if entry is not None and entry.text else ""
    if not value:
        raise ValueError(f"config.xml has no value for <{path.lstrip('./')}>")
    return value


def _int(root: ET.Element, path: str) -> int:
    value = _text(root, path)
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"config.xml <{path.lstrip('./')}> must be an integer, got {value!r}") from None


def _float(root: ET.Element, path: str) -> float:
    value = _text(root, path)
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"config.xml <{path.lstrip('./')}> must be a number, got {value!r}") from None


def _percent(root: ET.Element, path: str) -> int:
    value = _int(root, path)
    if not 1 <= value <= 100:
        raise ValueError(f"config.xml <{path.lstrip('./')}> must be between 1 and 100, got {value}")
    return value


def _load_allowed_cidrs(root: ET.Element) -> tuple[tuple[str, str], ...]:
    """
    Return (cidr, description) pairs for the load balancer whitelist.
    """
    cidrs = []
    for entry in root.findall("./site/allowed_cidrs/cidr"):
        cidr = entry.text.strip() if entry.text else ""
        description = entry.attrib.get("description", cidr)
        if cidr:
            cidrs.append((cidr, description))
    if not cidrs:
        raise ValueError("config.xml has no <cidr> entries under <site><allowed_cidrs>")
    return tuple(cidrs)


def _healthy_http_codes(root: ET.Element) -> str:
    value = _text(root, "./health_check/healthy_http_codes")
    codes = [code.strip() for code in value.split(",")]
    for code in codes:
        if not (code.isdigit() and len(code) == 3):
            raise ValueError(
                f"config.xml <health_check/healthy_http_codes> has an invalid HTTP code {code!r}"
            )
    return ",".join(codes)


def load_config(path: Optional[Union[str, Path]] = None) -> WordpressConfig:
    """
    Parse the deployment settings file (cdk/config.xml unless given).

    Raises FileNotFoundError when the file is absent and ValueError when an
    entry is missing or out of range.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")
    root = ET.parse(config_path).getroot()

    database = DatabaseConfig(
        name=_text(root, "./database/name"),
        username=_text(root, "./database/username"),
        secret_name=_text(root, "./database/secret_name"),
        min_capacity=_float(root, "./database/min_capacity"),
        max_capacity=_float(root, "./database/max_capacity"),
        auto_pause_minutes=_int(root, "./database/auto_pause_minutes"),
    )
    if database.min_capacity > database.max_capacity:
        raise ValueError(
            "config.xml <database/min_capacity> is greater than <database/max_capacity>"
        )

    scaling = ScalingConfig(
        min_tasks=_int(root, "./scaling/min_tasks"),
        max_tasks=_int(root, "./scaling/max_tasks"),
        cpu_target_percent=_percent(root, "./scaling/cpu_target_percent"),
        memory_target_percent=_percent(root, "./scaling/memory_target_percent"),
    )
    if scaling.min_tasks > scaling.max_tasks:
        raise ValueError("config.xml <scaling/min_tasks> is greater than <scaling/max_tasks>")

    return WordpressConfig(
        environment=EnvironmentConfig(
            account=_text(root, "./environment/account"),
            region=_text(root, "./environment/region"),
            project_tag=_text(root, "./environment/project_tag"),
        ),
        site=SiteConfig(
            domain_name=_text(root, "./site/domain_name"),
            host_prefix=_text(root, "./site/host_prefix"),
            cluster_name=_text(root, "./site/cluster_name"),
            log_group_name=_text(root, "./site/log_group_name"),
            allowed_cidrs=_load_allowed_cidrs(root),
        ),
        database=database,
        container=ContainerConfig(
            image=_text(root, "./container/image"),
            cpu=_int(root, "./container/cpu"),
            memory_mib=_int(root, "./container/memory_mib"),
            port=_int(root, "./container/port"),
        ),
        storage=StorageConfig(
            file_system_name=_text(root, "./storage/file_system_name"),
            mount_path=_text(root, "./storage/mount_path"),
        ),
        scaling=scaling,
        health_check=HealthCheckConfig(
            path=_text(root, "./health_check/path"),
            healthy_http_codes=_healthy_http_codes(root),
            grace_period_seconds=_int(root, "./health_check/grace_period_seconds"),
        ),
    )
