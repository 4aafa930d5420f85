def make_it_unique(base_value, model, field_name, exclude_pk=None, sep="_", max_length=30):
    """
    Returns a unique value for `field_name` in `model`, starting from base_value.
    Collisions get a numeric suffix joined with `sep`; the result is kept within max_length.
    If exclude_pk is provided, excludes that pk from the uniqueness check (useful for updates).
    """
    base_value = base_value[:max_length]
    value = base_value
    i = 1
    while True:
        qs = model.objects.filter(**{field_name: value})
        if exclude_pk:
            qs = qs.exclude(pk=exclude_pk)
        if not qs.exists():
            return value
        suffix = f"{sep}{i}"
        value = f"{base_value[:max_length - len(suffix)]}{suffix}"
        i += 1
