"""Constants for the CI VirtualMachine Operator."""

# API Group
API_GROUP = "ci.openshift.io"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_VIRTUAL_MACHINE = "VirtualMachine"
PLURAL_VIRTUAL_MACHINES = "virtualmachines"

# Controller identity
CONTROLLER_NAME = "virtual-machines"
FIELD_MANAGER = "ci-vm-operator"

# Finalizers
FINALIZER = f"{PLURAL_VIRTUAL_MACHINES}.{API_GROUP}"

# Processing phases
PHASE_PROVISIONED = "provisioned"
PHASE_ERROR = "error"

# Retry policy
# With the default rate limiter (5ms * 2^(requeues-1)) the delays between
# successive requeues are 5ms, 10ms, 20ms, ... 41s, 82s.
MAX_RETRIES = 15

# GCE
GCE_OPERATION_DONE = "DONE"
GCE_DEFAULT_NETWORK = "global/networks/default"
GCE_SSH_KEYS_METADATA_KEY = "ssh-keys"

# SSH credentials
SSH_USER = "root"
SSH_PORT = 22
SECRET_KEY_PRIVATE = "id_rsa"
SECRET_KEY_PUBLIC = "id_rsa.pub"
SECRET_KEY_SSH_CONFIG = "ssh_config"

# Admission
SUBRESOURCE_STATUS = "status"
OPERATION_UPDATE = "UPDATE"
REASON_FORBIDDEN = "Forbidden"
MESSAGE_SPEC_FORBIDDEN = "Updates to spec are forbidden for VirtualMachines"
PATCH_TYPE_JSON_PATCH = "JSONPatch"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_INSTANCE_CREATED = "InstanceCreated"
EVENT_REASON_INSTANCE_DELETED = "InstanceDeleted"
EVENT_REASON_FINALIZER_REMOVED = "FinalizerRemoved"
