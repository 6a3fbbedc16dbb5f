from skiptrace.models.account import Account
from skiptrace.models.credit_package import CreditPackage
from skiptrace.models.credit_transaction import CreditTransaction
from skiptrace.models.query_result import QueryResult

__all__ = ['Account', 'CreditPackage', 'CreditTransaction', 'QueryResult']
