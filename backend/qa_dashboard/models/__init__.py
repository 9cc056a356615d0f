from qa_dashboard.models.catalog import Site, Device, Feature, FeatureKind  # noqa: F401
from qa_dashboard.models.result import Result, ResultDetail  # noqa: F401
