"""EBS volume state as seen by the driver."""

from enum import Enum

from pydantic import BaseModel

NAME_TAG = "Name"


class VolumeState(str, Enum):
    """EBS volume availability state."""

    CREATING = "creating"
    AVAILABLE = "available"
    IN_USE = "in-use"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"


class AttachmentState(str, Enum):
    """EBS attachment state."""

    ATTACHING = "attaching"
    ATTACHED = "attached"
    DETACHING = "detaching"
    DETACHED = "detached"
    BUSY = "busy"


class Attachment(BaseModel):
    device: str
    state: AttachmentState
    instance_id: str

    model_config = {"frozen": True}


class Volume(BaseModel):
    """Snapshot of one EBS volume, identified by its Name tag."""

    name: str
    volume_id: str
    state: VolumeState
    size: int = 0
    attachments: list[Attachment] = []

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict) -> "Volume":
        """Build from a DescribeVolumes entry."""
        tags = {t["Key"]: t["Value"] for t in data.get("Tags", [])}
        return cls(
            name=tags.get(NAME_TAG, ""),
            volume_id=data["VolumeId"],
            state=VolumeState(data["State"]),
            size=data.get("Size", 0),
            attachments=[
                Attachment(
                    device=a["Device"],
                    state=AttachmentState(a["State"]),
                    instance_id=a["InstanceId"],
                )
                for a in data.get("Attachments", [])
            ],
        )

    @property
    def attachment(self) -> Attachment | None:
        """The single attachment, or None when there is not exactly one."""
        if len(self.attachments) == 1:
            return self.attachments[0]
        return None
