"""Input collaborators — DNS zone records and their git history."""

from radar.sources.dns_records import host_names, load_zone
from radar.sources.git_history import GitInfo, get_yaml_git_history

__all__ = ["load_zone", "host_names", "GitInfo", "get_yaml_git_history"]
