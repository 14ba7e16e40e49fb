# hc_core/tests/helpers.py

def scoped(tenant_id, office_id):
    return {
        "HTTP_X_TENANT_ID": str(tenant_id),
        "HTTP_X_OFFICE_ID": str(office_id),
    }
