"""
                        SmartQueue

Walk-up canteen ordering queue: sequential tokens, kitchen lifecycle,
wait-time estimation with a layered predictor fallback, and live
statistics for the admin dashboard.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
