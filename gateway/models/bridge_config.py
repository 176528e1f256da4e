# ============================================================
# File: bridge_config.py - bridge configuration record
# ============================================================
# Models:
# 1. BridgeConfig  - one configuration epoch (OPC source, Influx
#                    target, read tags and alias maps)
# ============================================================

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _alias(wire: str, distilled: str, attr: str) -> Dict[str, Any]:
    """Accept the wire name, the generic name and the attribute name"""
    return {
        "validation_alias": AliasChoices(*dict.fromkeys((wire, distilled, attr))),
        "serialization_alias": wire,
    }


# ------------------------------------------------------------
# 1. BridgeConfig
# ------------------------------------------------------------
class BridgeConfig(BaseModel):
    """Bridge configuration (immutable for the lifetime of an epoch)

    Serialized with the camelCase keys the web UI uses:
    opcHost, opcProgId, influxUrl, influxToken, influxOrg, influxBucket,
    readTags, readMapping, writeMapping
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    opc_host: str = Field("localhost", **_alias("opcHost", "deviceHost", "opc_host"))
    opc_prog_id: str = Field("", **_alias("opcProgId", "deviceProgramId", "opc_prog_id"))
    influx_url: str = Field("", **_alias("influxUrl", "storeUrl", "influx_url"))
    influx_token: str = Field("", **_alias("influxToken", "storeToken", "influx_token"))
    influx_org: str = Field("", **_alias("influxOrg", "storeOrg", "influx_org"))
    influx_bucket: str = Field("", **_alias("influxBucket", "storeBucket", "influx_bucket"))
    read_tags: List[str] = Field(default_factory=list, **_alias("readTags", "readTags", "read_tags"))
    # device tag -> influx field
    read_mapping: Dict[str, str] = Field(default_factory=dict, **_alias("readMapping", "readAliasMap", "read_mapping"))
    # influx field -> device tag
    write_mapping: Dict[str, str] = Field(default_factory=dict, **_alias("writeMapping", "writeAliasMap", "write_mapping"))

    @field_validator('opc_host', 'opc_prog_id', 'influx_url', 'influx_token', 'influx_org', 'influx_bucket', mode='before')
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator('read_tags', mode='before')
    @classmethod
    def unique_tags(cls, v):
        """Drop non-string entries and duplicates, keeping first occurrence"""
        if v is None:
            return []
        seen = set()
        tags = []
        for tag in v:
            if not isinstance(tag, str) or tag in seen:
                continue
            seen.add(tag)
            tags.append(tag)
        return tags

    @field_validator('read_mapping', 'write_mapping', mode='before')
    @classmethod
    def none_to_dict(cls, v):
        # JSON decoding already resolved duplicate keys last-write-wins
        return {} if v is None else v

    # ------------------------------------------------------------
    # Alias resolution
    # ------------------------------------------------------------
    def subscribable_tags(self) -> List[str]:
        """Read tags worth registering on the device (non-blank)"""
        return [t for t in self.read_tags if t.strip()]

    def read_field_for(self, tag_id: str) -> str:
        """Influx field name for a device tag (identity when unmapped)"""
        return self.read_mapping.get(tag_id, tag_id)

    def write_tag_for(self, field: str) -> str:
        """Device tag for an Influx command field (identity when unmapped)"""
        return self.write_mapping.get(field, field)

    def without_tag(self, tag_id: str) -> "BridgeConfig":
        """Return a copy with every reference to tag_id removed"""
        return self.model_copy(update={
            "read_tags": [t for t in self.read_tags if t != tag_id],
            "read_mapping": {k: v for k, v in self.read_mapping.items() if k != tag_id},
            "write_mapping": {k: v for k, v in self.write_mapping.items() if v != tag_id},
        })

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def empty(cls) -> "BridgeConfig":
        return cls()

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> "BridgeConfig":
        return cls.model_validate(data or {})
