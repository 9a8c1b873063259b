"""
Services module for Support Relay.
Provides collaborator API clients and the business services built on them.
"""

from .exceptions import (
    ExternalServiceError,
    ServiceNotConfiguredError,
    ServiceAuthenticationError,
    ServiceRateLimitError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    ServiceRequestError
)
from .http_client import BaseAPIClient
from .completion_service import (
    AnthropicCompletionProvider,
    CompletionError,
    CompletionConfigurationError,
    CompletionRateLimitError,
    CompletionTimeoutError
)
from .slack_service import SlackClient, PostedMessage, MessagingError
from .record_store import AirtableRecordStore, RecordStoreError
from .catalog_service import ProductCatalog, Product
from .order_service import OrderStatusService, OrderLookupResult
from .archive_service import ConversationArchiver, should_archive
from .payment_service import (
    SquarePaymentClient,
    PaymentError,
    PaymentNotConfiguredError,
    PaymentDeclinedError
)

__all__ = [
    # Errors
    'ExternalServiceError',
    'ServiceNotConfiguredError',
    'ServiceAuthenticationError',
    'ServiceRateLimitError',
    'ServiceTimeoutError',
    'ServiceUnavailableError',
    'ServiceRequestError',

    # HTTP
    'BaseAPIClient',

    # Completion
    'AnthropicCompletionProvider',
    'CompletionError',
    'CompletionConfigurationError',
    'CompletionRateLimitError',
    'CompletionTimeoutError',

    # Messaging
    'SlackClient',
    'PostedMessage',
    'MessagingError',

    # Records
    'AirtableRecordStore',
    'RecordStoreError',
    'ProductCatalog',
    'Product',
    'OrderStatusService',
    'OrderLookupResult',
    'ConversationArchiver',
    'should_archive',

    # Payments
    'SquarePaymentClient',
    'PaymentError',
    'PaymentNotConfiguredError',
    'PaymentDeclinedError',
]
