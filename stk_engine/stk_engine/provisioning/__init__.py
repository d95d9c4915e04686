"""Migration-time provisioning: trigger bindings and type-table rows.

Import the concrete modules directly (``provisioning.trigger_provisioner``,
``provisioning.type_synchronizer``); the value models depend on
``provisioning.ddl`` so this package keeps no eager imports.
"""
