class BuildSchedulerError(Exception):
    """Base class for errors raised by the cluster components."""


class NoAvailableContainer(BuildSchedulerError):
    def __init__(self, message: str = "No idle container available"):
        super().__init__(message)


class BuildAlreadyAssigned(BuildSchedulerError):
    def __init__(self, build_id: str, container_guid: str):
        self.build_id = build_id
        self.container_guid = container_guid
        super().__init__(
            f"Build {build_id} is already running on container {container_guid}"
        )


class RemoteMutationFailure(BuildSchedulerError):
    def __init__(self, build_id: str, container_guid: str, step: str):
        self.build_id = build_id
        self.container_guid = container_guid
        self.step = step
        super().__init__(
            f"Failed to {step} container {container_guid} for build {build_id}"
        )


class TransportFailure(BuildSchedulerError):
    """The container platform could not be reached or rejected the request."""


class NotificationFailure(BuildSchedulerError):
    def __init__(self, build_id: str, url: str, reason: str):
        self.build_id = build_id
        self.url = url
        self.reason = reason
        super().__init__(f"Callback {url} for build {build_id} failed: {reason}")


class InvalidBuildMessage(BuildSchedulerError):
    pass
