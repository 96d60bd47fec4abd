from django.conf import settings

DEFAULTS = {
    'LINKING_EXAMPLE_LIMIT': 3,
    'LINKING_HINT': (
        'Use "Link to existing item" or "Create new item" for every accepted '
        'line before submitting to audit review.'
    ),
    'PDF_LOGO_PATH': None,
    'PDF_INSTITUTION_NAME': '',
    'PDF_SECTION_NAME': 'PURCHASE SECTION',
}


def workflow_setting(name):
    return getattr(settings, 'INSPECTION_WORKFLOW', {}).get(name, DEFAULTS[name])
