"""
Domain errors raised by the inspection workflow.

Every error knows its HTTP status and renders a structured payload, so the
transport layer can report all offending fields, counts and hints at once.
"""


class WorkflowError(Exception):
    status_code = 400
    default_message = 'Inspection workflow error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response_data(self):
        return {'error': self.message, 'code': self.__class__.__name__}


class ValidationError(WorkflowError):
    """Missing or invalid fields; `fields` maps every offending field to its problem."""
    default_message = 'Validation failed'

    def __init__(self, fields, message=None):
        if isinstance(fields, (list, tuple, set, frozenset)):
            fields = {name: 'This field is required.' for name in sorted(fields)}
        self.fields = dict(fields)
        super().__init__(message)

    @property
    def missing_fields(self):
        return sorted(self.fields)

    def to_response_data(self):
        data = super().to_response_data()
        data['fields'] = self.fields
        return data


class LinkingIncompleteError(WorkflowError):
    default_message = 'All accepted items must be linked before submitting to audit review.'

    def __init__(self, unlinked_count, examples, hint, message=None):
        self.unlinked_count = unlinked_count
        self.examples = list(examples)
        self.hint = hint
        super().__init__(
            message or f'Cannot submit: {unlinked_count} item(s) still need to be linked.'
        )

    def to_response_data(self):
        data = super().to_response_data()
        data.update({
            'unlinked_count': self.unlinked_count,
            'examples': self.examples,
            'hint': self.hint,
        })
        return data


class TerminalStateError(WorkflowError):
    default_message = 'Certificate is in a terminal stage and can no longer be modified.'

    def __init__(self, stage, message=None):
        self.stage = stage
        super().__init__(message or f'Certificate is {stage} and can no longer be modified.')

    def to_response_data(self):
        data = super().to_response_data()
        data['stage'] = self.stage
        return data


class ConflictError(WorkflowError):
    status_code = 409
    default_message = 'Certificate stage changed concurrently.'

    def __init__(self, current_stage, expected_stage, message=None):
        self.current_stage = current_stage
        self.expected_stage = expected_stage
        super().__init__(
            message
            or f'Certificate must be in {expected_stage} stage, currently in {current_stage}'
        )

    def to_response_data(self):
        data = super().to_response_data()
        data.update({
            'current_stage': self.current_stage,
            'expected_stage': self.expected_stage,
        })
        return data


class NotFoundError(WorkflowError):
    status_code = 404
    default_message = 'Not found.'

    def __init__(self, model, object_id, message=None):
        self.model = model
        self.object_id = object_id
        super().__init__(message or f'{model} {object_id} does not exist.')
