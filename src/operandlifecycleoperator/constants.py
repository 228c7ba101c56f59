"""Fixed names of the APIs, labels and phases used by the operator."""

# OperandRegistry and OperandRequest
API_GROUP = "operator.ibm.com"
API_VERSION = "v1alpha1"
REGISTRY_PLURAL = "operandregistries"
REQUEST_PLURAL = "operandrequests"

# Operator Lifecycle Manager
OLM_GROUP = "operators.coreos.com"

# Labels
OWNERSHIP_LABEL = f"{API_GROUP}/opreq-control"
DO_NOT_UNINSTALL_LABEL = f"{API_GROUP}/opreq-do-not-uninstall"

# Annotation bumped on OperandRequests when a registry they use changes
REGISTRY_TRIGGER_ANNOTATION = f"{API_GROUP}/registry-resource-version"

# Prefix of the annotations kopf keeps its own state in. It must not be
# API_GROUP: kopf leaves every annotation under its prefix out of the diff
# that triggers update handlers.
KOPF_PREFIX = f"kopf.{API_GROUP}"

OPERATOR_GROUP_NAME = "operand-deployment-lifecycle-manager-operatorgroup"

# Operator definition values
SCOPE_PRIVATE = "private"
INSTALL_MODE_NAMESPACE = "namespace"
INSTALL_MODE_CLUSTER = "cluster"
APPROVAL_AUTOMATIC = "Automatic"

# Member phases
PHASE_INSTALLING = "Installing"
PHASE_UPDATING = "Updating"
PHASE_FAILED = "Failed"
PHASE_RUNNING = "Running"
PHASE_NOT_FOUND = "NotFound"

# Aggregate phase of a request with no members
CLUSTER_PHASE_PENDING = "Pending"

# Condition types
COND_NOT_FOUND = "NotFound"
COND_OUT_OF_SCOPE = "OutOfScope"
COND_CREATING = "Creating"
COND_UPDATING = "Updating"
COND_DELETING = "Deleting"

# Resource types named in condition messages
RESOURCE_REGISTRY = "OperandRegistry"
RESOURCE_SUBSCRIPTION = "Subscription"
RESOURCE_CSV = "ClusterServiceVersion"

# InstallPlan phases
INSTALL_PLAN_COMPLETE = "Complete"
INSTALL_PLAN_FAILED = "Failed"
