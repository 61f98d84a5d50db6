from .dates import datetime_to_unix, ns_to_datetime, ns_to_unix, unix_to_datetime, unix_to_ns

__all__ = ["datetime_to_unix", "ns_to_datetime", "ns_to_unix", "unix_to_datetime", "unix_to_ns"]
