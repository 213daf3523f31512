"""
English renderings of the message keys returned by the weekly plan services.
Clients localize by `code`/`message key` + `params`; these strings are the fallback.
"""

from typing import Any, Dict

MESSAGES: Dict[str, str] = {
    # weekly plan
    "weekly_plan_found": "Weekly plan loaded.",
    "weekly_plan_not_found": "Weekly plan not found. Set your timezone first.",
    "weekly_plan_updated": "Weekly plan updated.",
    "weekly_plan_expired": "Weekly plan expired.",
    "timezone_set": "Timezone set to {timezone}.",
    "menu_deleted": "Menu removed from the weekly plan.",
    "menu_published": "Menu published.",
    "menu_unpublished": "Menu unpublished.",
    # menu quota
    "duplicate_menu": "All selected menus are already assigned to this week.",
    "warning_multiple": "Your {plan_name} plan allows {user_limit} menus per week. Only {admitted} of {requested} menus were assigned.",
    "warning": "You can assign {remaining} more menus this week on your {plan_name} plan.",
    "limit_reached": "Your {plan_name} plan allows {user_limit} menus per week and the limit is reached.",
    "menus_assigned": "{count} menu(s) assigned.",
    # roster
    "customers_assigned": "{count} customer(s) assigned.",
    "customer_removed": "Customer removed from the menu.",
    "groups_assigned": "{count} group(s) assigned.",
    "group_removed": "Group removed from the menu.",
    "roster_partially_assigned": "Some customers or groups could not be assigned.",
    "roster_not_assigned": "None of the selected customers or groups could be assigned.",
    "menu_published_roster_locked": "Menu is published. Unpublish it before changing customers.",
    "customer_quota_reached": "{customer} is already assigned to {menu_quantity} menu(s) this week.",
    "customer_already_in_menu": "{customer} is already assigned to this menu.",
    "customer_already_assigned": "{customer} is already assigned to menu {menu_title}.",
    "customer_in_assigned_group": "{customer} is already covered by group {group_name}.",
    "group_already_assigned": "Group {group_name} is already assigned to menu {menu_title}.",
    "group_members_already_assigned": "Group {group_name} has members already assigned this week: {customers}.",
    # publish
    "already_published": "Menu is already published.",
    "already_unpublished": "Menu is already unpublished.",
    "no_customers_assigned": "Assign at least one customer before publishing.",
    "orders_already_started": "Orders for this week are already done and can not be changed.",
    # manual expiration
    "menu_not_published": "Every assigned menu must be published before the week can be closed.",
}


def render(key: str, **params: Any) -> str:
    """Render a message key; unknown keys and missing params fall back to the key itself."""
    template = MESSAGES.get(key)
    if template is None:
        return key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
