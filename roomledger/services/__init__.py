"""
Services package.

Import from the submodules directly (roomledger.services.storage,
roomledger.services.recurring, ...). The audit logger depends on the
storage subpackage, so this module stays free of imports.
"""
