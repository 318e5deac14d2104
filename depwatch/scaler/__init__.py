"""Level-ordered scale-up and scale-down of dependent resources."""