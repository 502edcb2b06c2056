"""Reconcile handlers for CRD resources."""

from .virtualmachine import VirtualMachineHandler

__all__ = ["VirtualMachineHandler"]
