from dataclasses import dataclass


@dataclass(frozen=True)
class PartResult:
    part_number: int
    validation_tag: str
    byte_length: int

    def __post_init__(self):
        if not isinstance(self.part_number, int) or self.part_number < 1:
            raise ValueError(f"Invalid part number: {self.part_number!r}")
        if not isinstance(self.validation_tag, str) or not self.validation_tag:
            raise ValueError(
                f"Invalid etag for part {self.part_number}: {self.validation_tag!r}"
            )

    def to_manifest_entry(self) -> dict:
        return {"partNumber": self.part_number, "etag": self.validation_tag}

    def to_json(self) -> dict:
        return {
            "part_number": self.part_number,
            "etag": self.validation_tag,
            "size": self.byte_length,
        }

    @staticmethod
    def from_json(json: dict) -> "PartResult":
        part_number = json.get("part_number", json.get("partNumber"))
        etag = json.get("etag", json.get("ETag"))
        size = json.get("size", 0)
        if not isinstance(part_number, int):
            raise ValueError(f"Invalid part number in {json}")
        if not isinstance(etag, str):
            raise ValueError(f"Invalid etag in {json}")
        # some backends quote the etag
        etag = etag.replace('"', "")
        return PartResult(part_number=part_number, validation_tag=etag, byte_length=size)

    @staticmethod
    def to_manifest(parts: list["PartResult"]) -> list[dict]:
        ordered = sorted(parts, key=lambda p: p.part_number)
        return [p.to_manifest_entry() for p in ordered]
