"""Best-effort hardware spec extraction from vendor attributes.

AWS exposes structured product attributes, so extraction is a field-by-field
parse. Azure's retail API does not, so specs are inferred from naming
conventions through an ordered cascade of tiers (ARM SKU name, friendly SKU
name, meter name). The first tier that yields anything wins; later tiers never
override an earlier one. Neither extractor raises: unparseable fields are left
absent.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Optional, Protocol

from pricing_atlas.normalization.schema import ResourceSpecs

PREMIUM_SSD = "Premium SSD"

# --- AWS -------------------------------------------------------------------

AWS_BURSTABLE_FAMILIES = ("t2", "t3", "t4g")
# Graviton families carry a "g" right after the generation digit (m6g, c7gn, t4g, x2gd).
AWS_ARM_FAMILY_RE = re.compile(r"^[a-z]+\d+g[a-z]*$")
AWS_STORAGE_RE = re.compile(r"(\d+)\s*[x×]\s*(\d+(?:\.\d+)?)")
NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


class ResourceSpecExtractor(Protocol):
    def extract(self, provider: str, service_type: str, attributes: dict[str, Any]) -> ResourceSpecs: ...


def _attr(attributes: dict[str, Any], key: str) -> Optional[str]:
    value = attributes.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_size_gb(value: Optional[str]) -> Optional[float]:
    """Parse strings like "4 GiB", "3.75 GB" or "16"."""
    if value is None or value.upper() == "NA":
        return None
    cleaned = value.replace("GiB", "").replace("GB", "").strip()
    try:
        size = float(cleaned)
    except ValueError:
        return None
    return size if size > 0 else None


def _parse_storage(value: Optional[str]) -> tuple[Optional[float], Optional[str]]:
    """Parse instance storage like "2 x 900 NVMe SSD"; "EBS only" means none."""
    if value is None or value in ("NA", "EBS only"):
        return None, None
    storage_type = "hdd" if "HDD" in value else "ssd"
    match = AWS_STORAGE_RE.search(value)
    if match is None:
        return None, storage_type
    return int(match.group(1)) * float(match.group(2)), storage_type


def _parse_clock_speed(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    match = NUMBER_RE.search(value)
    return float(match.group(1)) if match else None


class AWSResourceSpecExtractor:
    """Parse AWS product attributes (vcpu, memory, storage, gpu, ...)."""

    def extract(self, provider: str, service_type: str, attributes: dict[str, Any]) -> ResourceSpecs:
        attributes = attributes or {}
        specs = ResourceSpecs()
        specs.vcpu = _parse_int(_attr(attributes, "vcpu"))
        specs.memory_gb = _parse_size_gb(_attr(attributes, "memory"))
        specs.storage_gb, specs.storage_type = _parse_storage(_attr(attributes, "storage"))
        specs.network_performance = _attr(attributes, "networkPerformance")
        specs.processor_type = _attr(attributes, "processorType") or _attr(
            attributes, "physicalProcessor"
        )
        specs.clock_speed_ghz = _parse_clock_speed(_attr(attributes, "clockSpeed"))

        gpu = _attr(attributes, "gpu")
        if gpu is not None and gpu != "NA":
            specs.gpu_count = _parse_int(gpu)
        specs.gpu_memory_gb = _parse_size_gb(_attr(attributes, "gpuMemory"))

        instance_type = _attr(attributes, "instanceType")
        if instance_type:
            self._enrich_from_instance_type(specs, instance_type)
        return specs

    @staticmethod
    def _enrich_from_instance_type(specs: ResourceSpecs, instance_type: str) -> None:
        family = instance_type.split(".", 1)[0].lower()
        if family.startswith(AWS_BURSTABLE_FAMILIES):
            specs.burstable = True
        specs.architecture = "arm64" if AWS_ARM_FAMILY_RE.match(family) else "x86_64"


# --- Azure -----------------------------------------------------------------

# GB of memory per vCPU by VM family letter.
AZURE_MEMORY_RATIOS = {
    "D": 4.0,
    "F": 2.0,
    "E": 8.0,
    "M": 28.0,
    "G": 14.0,
    "N": 6.0,
    "B": 2.0,  # friendly-name fallback only; ARM names use the exact table
}

# B-series memory is irregular, so known SKUs are listed exactly: (vcpu, memory_gb).
AZURE_B_SERIES = {
    "Standard_B1ls": (1, 0.5),
    "Standard_B1s": (1, 1.0),
    "Standard_B1ms": (1, 2.0),
    "Standard_B2s": (2, 4.0),
    "Standard_B2ms": (2, 8.0),
    "Standard_B4ms": (4, 16.0),
    "Standard_B8ms": (8, 32.0),
}

# Known N-series GPU SKUs: (gpu_count, total gpu memory in GB).
AZURE_N_SERIES_GPUS = {
    "Standard_NC6": (1, 12.0),
    "Standard_NC12": (2, 24.0),
    "Standard_NC24": (4, 48.0),
    "Standard_NC6s_v3": (1, 16.0),
    "Standard_NC12s_v3": (2, 32.0),
    "Standard_NC24s_v3": (4, 64.0),
    "Standard_NV6": (1, 8.0),
    "Standard_NV12": (2, 16.0),
    "Standard_NV24": (4, 32.0),
    "Standard_ND6s": (1, 24.0),
    "Standard_ND12s": (2, 48.0),
    "Standard_ND24s": (4, 96.0),
}

AzureRule = Callable[[re.Match, str], ResourceSpecs]


def _ratio_rule(family: str) -> AzureRule:
    ratio = AZURE_MEMORY_RATIOS[family]

    def rule(match: re.Match, sku: str) -> ResourceSpecs:
        vcpu = int(match.group("vcpu"))
        specs = ResourceSpecs(vcpu=vcpu, memory_gb=vcpu * ratio)
        if "s_" in sku:
            specs.storage_type = PREMIUM_SSD
        return specs

    return rule


def _b_series_rule(match: re.Match, sku: str) -> ResourceSpecs:
    known = AZURE_B_SERIES.get(sku)
    if known is None:
        return ResourceSpecs()
    vcpu, memory_gb = known
    return ResourceSpecs(vcpu=vcpu, memory_gb=memory_gb, burstable=True)


def _n_series_rule(match: re.Match, sku: str) -> ResourceSpecs:
    specs = _ratio_rule("N")(match, sku)
    known = AZURE_N_SERIES_GPUS.get(sku)
    if known is not None:
        specs.gpu_count, specs.gpu_memory_gb = known
    return specs


# Evaluated in order; the first matching pattern decides.
AZURE_ARM_SKU_RULES: list[tuple[re.Pattern, AzureRule]] = [
    (re.compile(r"^Standard_D(?P<vcpu>\d+)[a-z]*_v\d+"), _ratio_rule("D")),
    (re.compile(r"^Standard_F(?P<vcpu>\d+)[a-z]*_v\d+"), _ratio_rule("F")),
    (re.compile(r"^Standard_B(?P<vcpu>\d+)l?m?s"), _b_series_rule),
    (re.compile(r"^Standard_E(?P<vcpu>\d+)[a-z]*_v\d+"), _ratio_rule("E")),
    (re.compile(r"^Standard_M(?P<vcpu>\d+)[a-z]*"), _ratio_rule("M")),
    (re.compile(r"^Standard_GS?(?P<vcpu>\d+)"), _ratio_rule("G")),
    (re.compile(r"^Standard_N[CDVG](?P<vcpu>\d+)[a-z]*"), _n_series_rule),
]

AZURE_FRIENDLY_SKU_RE = re.compile(r"(?P<family>[DFBE])(?P<vcpu>\d+)(?P<premium>s?)\s?v\d+")
AZURE_METER_VCPU_RE = re.compile(r"(\d+)\s*(vCPU|Core|CPU)")
AZURE_METER_MEMORY_RE = re.compile(r"(\d+\.?\d*)\s*(GB|GiB)")


def _from_arm_sku(arm_sku: str) -> ResourceSpecs:
    for pattern, rule in AZURE_ARM_SKU_RULES:
        match = pattern.match(arm_sku)
        if match:
            return rule(match, arm_sku)
    return ResourceSpecs()


def _from_sku_name(sku_name: str) -> ResourceSpecs:
    known = AZURE_B_SERIES.get("Standard_" + sku_name.replace(" ", "_"))
    if known is not None:
        vcpu, memory_gb = known
        return ResourceSpecs(vcpu=vcpu, memory_gb=memory_gb, burstable=True)

    match = AZURE_FRIENDLY_SKU_RE.search(sku_name)
    if match is None:
        return ResourceSpecs()
    family = match.group("family")
    vcpu = int(match.group("vcpu"))
    specs = ResourceSpecs(vcpu=vcpu, memory_gb=vcpu * AZURE_MEMORY_RATIOS[family])
    if match.group("premium") == "s":
        specs.storage_type = PREMIUM_SSD
    if family == "B":
        specs.burstable = True
    return specs


def _from_meter_name(meter_name: str) -> ResourceSpecs:
    specs = ResourceSpecs()
    vcpu_match = AZURE_METER_VCPU_RE.search(meter_name)
    if vcpu_match:
        specs.vcpu = int(vcpu_match.group(1))
    memory_match = AZURE_METER_MEMORY_RE.search(meter_name)
    if memory_match:
        specs.memory_gb = float(memory_match.group(1))
    return specs


# Ordered by reliability of the source field.
AZURE_SPEC_TIERS: list[tuple[str, Callable[[str], ResourceSpecs]]] = [
    ("armSkuName", _from_arm_sku),
    ("skuName", _from_sku_name),
    ("meterName", _from_meter_name),
]


class AzureResourceSpecExtractor:
    """Infer specs from Azure SKU and meter naming conventions."""

    def extract(self, provider: str, service_type: str, attributes: dict[str, Any]) -> ResourceSpecs:
        attributes = attributes or {}
        for key, tier in AZURE_SPEC_TIERS:
            value = _attr(attributes, key)
            if not value:
                continue
            specs = tier(value)
            if not specs.is_empty():
                return specs
        return ResourceSpecs()


EXTRACTORS: dict[str, ResourceSpecExtractor] = {
    "aws": AWSResourceSpecExtractor(),
    "azure": AzureResourceSpecExtractor(),
}


def extract_resource_specs(provider: str, service_type: str, attributes: dict[str, Any]) -> ResourceSpecs:
    """Dispatch to the provider's extractor; unknown providers get empty specs."""
    extractor = EXTRACTORS.get((provider or "").lower())
    if extractor is None:
        return ResourceSpecs()
    return extractor.extract(provider, service_type, attributes)
