"""
Unit tests for formatting helpers.
"""

import pytest
from datetime import datetime

from app.utils.formatters import datetime_in, group_in, money_inr, num_in


class TestMoneyInr:
    @pytest.mark.parametrize('paise,expected', [
        (12345650, '₹1,23,456.50'),
        (50000, '₹500.00'),
        (0, '₹0.00'),
        (5, '₹0.05'),
        (100000000, '₹10,00,000.00'),
        (-1050, '-₹10.50'),
    ])
    def test_indian_grouping(self, paise, expected):
        assert money_inr(paise) == expected

    def test_custom_symbol(self):
        assert money_inr(76700, symbol='Rs. ') == 'Rs. 767.00'

    def test_invalid(self):
        assert money_inr(None) == '-'
        assert money_inr('abc') == '-'


class TestGrouping:
    def test_group_in(self):
        assert group_in('999') == '999'
        assert group_in('1000') == '1,000'
        assert group_in('12345678') == '1,23,45,678'

    def test_num_in(self):
        assert num_in(150000) == '1,50,000'
        assert num_in(None) == '-'


class TestDates:
    def test_datetime_in(self):
        assert datetime_in(datetime(2026, 1, 2, 15, 30)) == '02/01/2026 15:30'
        assert datetime_in('2026-01-02') == '-'
