"""
pool-info error types and vSphere fault mapping

Every failure of the resolve -> fetch -> render pipeline is raised as a
PoolInfoError subclass. vSphere/vmodl faults are translated into
operator-friendly messages via describe_fault().
"""

import re
from typing import Any, Dict, Optional


class PoolInfoError(Exception):
    """Base exception for pool-info operations"""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class UsageError(PoolInfoError):
    """Raised when the report is requested without any pool pattern"""

    def __init__(self, message: str = "at least one POOL argument is required"):
        super().__init__(message, error_code="USAGE")


class ResolutionError(PoolInfoError):
    """Raised when a name pattern cannot be resolved against the inventory"""

    def __init__(self, message: str, pattern: Optional[str] = None):
        super().__init__(message, error_code="RESOLUTION_FAILED")
        self.pattern = pattern


class RetrievalError(PoolInfoError):
    """Raised when the batched property retrieval fails"""

    def __init__(self, message: str):
        super().__init__(message, error_code="RETRIEVAL_FAILED")


class ConnectionFailedError(PoolInfoError):
    """Raised when no vCenter session can be established"""

    def __init__(self, host: str, message: str):
        super().__init__(f"Failed to connect to vCenter {host}: {message}", error_code="CONNECTION_FAILED")
        self.host = host


# Mapping of vSphere fault names to user-friendly messages
VSPHERE_FAULT_MESSAGES: Dict[str, Dict[str, Any]] = {
    'InvalidLogin': {
        'title': 'Authentication Failed',
        'message': 'Invalid credentials for vCenter connection.',
    },
    'NotAuthenticated': {
        'title': 'Session Expired',
        'message': 'The vCenter session is no longer authenticated.',
    },
    'NoPermission': {
        'title': 'Permission Denied',
        'message': 'Insufficient permissions to read resource pool properties.',
    },
    'ManagedObjectNotFound': {
        'title': 'Object Not Found',
        'message': 'A resource pool was removed from the inventory during the request.',
    },
    'InvalidProperty': {
        'title': 'Invalid Property',
        'message': 'vCenter rejected one of the requested property paths.',
    },
    'Timedout': {
        'title': 'Operation Timeout',
        'message': 'The vCenter request timed out.',
    },
    'HostCommunication': {
        'title': 'Communication Error',
        'message': 'vCenter could not be reached.',
    },
}


def describe_fault(error: Exception) -> str:
    """
    Return an operator-friendly description of a vSphere fault.

    Known fault types are matched by exception type name (pyVmomi raises
    e.g. vim.fault.InvalidLogin, whose class name is 'InvalidLogin'),
    otherwise the fault's msg field or the plain exception text is used.
    """
    error_type = type(error).__name__
    error_str = str(error)

    for fault_name, info in VSPHERE_FAULT_MESSAGES.items():
        if error_type.endswith(fault_name) or f"vim.fault.{fault_name}" in error_str \
                or f"vmodl.fault.{fault_name}" in error_str:
            return f"{info['title']}: {info['message']}"

    fault_msg = getattr(error, "msg", None)
    if isinstance(fault_msg, str) and fault_msg:
        return fault_msg

    msg_match = re.search(r"msg\s*=\s*'([^']+)'", error_str)
    if msg_match:
        return msg_match.group(1)

    return error_str or error_type
