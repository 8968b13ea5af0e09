CATEGORIES = (
    "Cars",
    "Motorcycles",
    "Mobile Phones",
    "Apartments",
    "Electronics",
    "Jobs",
    "Services",
    "Books",
)

# category filter value meaning "no restriction"
ALL_CATEGORIES = "All Categories"

DEFAULT_LOCATION = "Unknown"

# largest price a listing or a filter bound may carry (signed 64-bit column)
MAX_PRICE = 2**63 - 1
