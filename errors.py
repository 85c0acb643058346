"""Exception hierarchy for an advisor pass.

Upstream and topology errors are fatal: the pass aborts and no report is written.
Missing metrics and missing specs are not exceptions; they surface as
undetermined/absent values in the report rows.
"""


class AdvisorError(Exception):
    """Base class for advisor failures"""
    pass


class UpstreamError(AdvisorError):
    """Raised when the cluster API or the metrics backend fails"""
    pass


class AmbiguousTopologyError(AdvisorError):
    """Raised when a deployment's active replica set can't be identified uniquely"""

    def __init__(self, namespace: str, deployment: str, message: str):
        self.namespace = namespace
        self.deployment = deployment
        super().__init__(f"{namespace}/{deployment}: {message}")
