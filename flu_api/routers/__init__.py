"""API routers."""

from . import health
from . import datasets
from . import etl_data
from . import influenza
from . import prediction
from . import backtest
from . import beds
from . import records

__all__ = ['health', 'datasets', 'etl_data', 'influenza', 'prediction', 'backtest', 'beds', 'records']
