"""Admission webhook for VirtualMachine resources."""

from .review import AdmissionDecision, AdmissionRequest, mutate, validate

__all__ = ["AdmissionDecision", "AdmissionRequest", "mutate", "validate"]
