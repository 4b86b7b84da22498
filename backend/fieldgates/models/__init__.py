from fieldgates.models.job import Job
from fieldgates.models.gate import Gate
from fieldgates.models.photo import Photo

__all__ = ["Job", "Gate", "Photo"]
