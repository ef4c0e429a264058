"""Log event types for structured logging."""

from enum import StrEnum


class LogEvent(StrEnum):
    """Log event types for the plugin.

    Used with logger.info/warning/error extra dict:
        logger.info("message", extra={"event": LogEvent.VOLUME_ATTACHED, ...})
    """

    # Application lifecycle
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"
    INSTANCE_DETECTED = "instance_detected"

    # Plugin requests
    REQUEST_RECEIVED = "request_received"
    REQUEST_COMPLETED = "request_completed"
    PLUGIN_ERROR = "plugin_error"
    UNHANDLED_EXCEPTION = "unhandled_exception"

    # Volume lifecycle
    VOLUME_CREATED = "volume_created"
    VOLUME_ATTACHED = "volume_attached"
    VOLUME_DETACHED = "volume_detached"
    VOLUME_FORMATTED = "volume_formatted"
    VOLUME_MOUNTED = "volume_mounted"
    VOLUME_UNMOUNTED = "volume_unmounted"

    # Allocation and polling
    SLOT_TAKEN = "slot_taken"
    DEVICE_ALIAS_RESOLVED = "device_alias_resolved"
    STATE_WAITING = "state_waiting"
    COMPENSATION_FAILED = "compensation_failed"

    # Inputs that are accepted but suspicious
    DUPLICATE_NAME_TAG = "duplicate_name_tag"
    INVALID_SIZE_OPTION = "invalid_size_option"

    # Provider
    EC2_RETRY = "ec2_retry"
