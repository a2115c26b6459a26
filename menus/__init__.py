# Interactive terminal menus (UI layer)
