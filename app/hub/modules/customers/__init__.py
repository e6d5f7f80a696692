"""
Customers module.

- Status-partitioned customer list (one view per status)
- Add / delete / move between statuses
- Spreadsheet export of the current view
- Live list updates over Server-Sent Events
"""
