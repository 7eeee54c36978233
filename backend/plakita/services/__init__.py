"""
Plakita Backend — Services Layer
==================================

Service Inventory:
    - validation:         tag code and pet form rules
    - links:              activation / public profile / contact links
    - tag_lookup:         strategy chain that turns a scanned code into a tag
    - claim_service:      claim state machine and the two-step claim commit
    - pet_service:        owner and public pet profiles
    - dashboard_service:  owner's tags, pet deletion
    - tag_admin_service:  tag inventory (create, list, guarded delete)
    - integrity_service:  scan and repair of broken activations
    - admin_service:      statistics, users, NFC, diagnostics
    - procedures:         allowlisted remote procedure calls
    - auth_client:        hosted auth REST client and token verification
    - session:            per-request SessionContext and auth dependencies
    - user_service:       `users` profile row sync

Services take an AsyncSession and plain arguments, raise PlakitaError
subclasses, and never touch HTTP.
"""
