"""Pre-trained model nodes for a visual dataflow host.

Packages:
- ``common``: configuration, structured logging, metrics and tracing helpers.
- ``runtime``: the model-runtime capability (load, output schema, engines)
  and the joblib archive implementation of it.
- ``nodes``: shape synthesis, schema translation, binding, value marshaling
  and the node factory exposed to the host.

Import pattern:
- from mlnodes.nodes.factory import ModelNodeFactory
- from mlnodes.common.config import ModelNodesConfig
"""

__version__ = "0.1.0"
